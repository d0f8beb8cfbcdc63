"""Tests for the reference time-entry REST server.

Runs the Flask app against a temporary SQLite file with the server clock
pinned to a fake.
"""

import shutil
import tempfile
import unittest
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

from shared.utils import format_datetime
from tests.fakes import T0, FakeClock

AUTH = {'Authorization': 'Bearer default-api-key'}


class ServerTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

        from server import server
        self.server = server
        self._orig_db = server.SERVER_DB
        server.SERVER_DB = Path(self.tmpdir) / "server.db"

        self.clock = FakeClock()
        self._clock_patch = patch.object(server, 'server_now', self.clock)
        self._clock_patch.start()

        server.init_server_db()
        server.app.config['TESTING'] = True
        self.http = server.app.test_client()

        self.job_id = self.create_job("Kitchen Reno")

    def tearDown(self):
        self._clock_patch.stop()
        self.server.SERVER_DB = self._orig_db
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def create_job(self, title, **extra):
        response = self.http.post('/api/v1/jobs', json=dict(extra, title=title), headers=AUTH)
        self.assertEqual(response.status_code, 201)
        return response.get_json()['data']['id']

    def start(self, headers=AUTH, **extra):
        payload = {'job_id': self.job_id, 'start_time': format_datetime(self.clock())}
        payload.update(extra)
        return self.http.post('/api/v1/time-entries', json=payload, headers=headers)

    def active(self, headers=AUTH):
        return self.http.get('/api/v1/time-entries/active', headers=headers).get_json()['data']['entry']


class TestAuthAndInfo(ServerTestCase):

    def test_health_needs_no_auth(self):
        response = self.http.get('/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['data']['status'], 'healthy')

    def test_missing_key_is_unauthorized(self):
        response = self.http.get('/api/v1/time-entries/active')
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.get_json()['success'])

    def test_unknown_key_is_unauthorized(self):
        response = self.http.get('/api/v1/jobs', headers={'Authorization': 'Bearer nope'})
        self.assertEqual(response.status_code, 401)

    def test_info(self):
        data = self.http.get('/api/v1/info').get_json()['data']
        self.assertEqual(data['company_name'], 'TradieTime')
        self.assertIn('server_time', data)

    def test_unknown_route_is_json_404(self):
        response = self.http.get('/api/v1/nothing-here')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()['error'], 'Not found')


class TestOpenEntries(ServerTestCase):

    def test_no_active_entry_is_null(self):
        self.assertIsNone(self.active())

    def test_start_uses_server_clock(self):
        self.clock.advance(5)
        response = self.start(start_time='2024-05-15T08:00:00Z')
        self.assertEqual(response.status_code, 201)
        entry = response.get_json()['data']
        self.assertEqual(entry['start_time'], '2024-05-15T09:00:05Z')
        self.assertIsNone(entry['end_time'])
        self.assertEqual(entry['origin'], 'timer')
        self.assertEqual(entry['user_id'], 'default-user')
        self.assertEqual(self.active()['id'], entry['id'])

    def test_second_open_entry_conflicts(self):
        self.assertEqual(self.start().status_code, 201)
        response = self.start()
        self.assertEqual(response.status_code, 409)
        self.assertFalse(response.get_json()['success'])

    def test_validation(self):
        missing_job = self.http.post('/api/v1/time-entries', json={'start_time': '2024-05-15T09:00:00Z'},
                                     headers=AUTH)
        bad_time = self.start(start_time='yesterday')
        unknown_job = self.start(job_id='no-such-job')
        self.assertEqual(missing_job.status_code, 400)
        self.assertEqual(bad_time.status_code, 400)
        self.assertEqual(unknown_job.status_code, 400)
        self.assertIsNone(self.active())


class TestClosingEntries(ServerTestCase):

    def test_put_closes_with_derived_duration(self):
        entry_id = self.start().get_json()['data']['id']
        end = T0 + timedelta(seconds=121)
        response = self.http.put(f'/api/v1/time-entries/{entry_id}',
                                 json={'end_time': format_datetime(end), 'duration_minutes': 99},
                                 headers=AUTH)
        self.assertEqual(response.status_code, 200)
        entry = response.get_json()['data']
        self.assertEqual(entry['duration_minutes'], 3)
        self.assertEqual(entry['end_time'], '2024-05-15T09:02:01Z')
        self.assertIsNone(self.active())

    def test_put_before_start_is_rejected(self):
        entry_id = self.start().get_json()['data']['id']
        response = self.http.put(f'/api/v1/time-entries/{entry_id}',
                                 json={'end_time': format_datetime(T0 - timedelta(minutes=1))},
                                 headers=AUTH)
        self.assertEqual(response.status_code, 400)
        self.assertIsNotNone(self.active())

    def test_closing_twice_is_not_found(self):
        entry_id = self.start().get_json()['data']['id']
        payload = {'end_time': format_datetime(T0 + timedelta(minutes=5))}
        self.assertEqual(self.http.put(f'/api/v1/time-entries/{entry_id}', json=payload,
                                       headers=AUTH).status_code, 200)
        self.assertEqual(self.http.put(f'/api/v1/time-entries/{entry_id}', json=payload,
                                       headers=AUTH).status_code, 404)
        self.assertEqual(self.http.post(f'/api/v1/time-entries/{entry_id}/stop',
                                        headers=AUTH).status_code, 404)

    def test_stop_endpoint_uses_server_clock(self):
        entry_id = self.start().get_json()['data']['id']
        self.clock.advance(30 * 60 + 1)
        entry = self.http.post(f'/api/v1/time-entries/{entry_id}/stop', headers=AUTH).get_json()['data']
        self.assertEqual(entry['duration_minutes'], 31)

    def test_half_second_session_credits_a_minute(self):
        entry_id = self.start().get_json()['data']['id']
        self.clock.advance(0.5)
        entry = self.http.post(f'/api/v1/time-entries/{entry_id}/stop', headers=AUTH).get_json()['data']
        self.assertEqual(entry['duration_minutes'], 1)
        self.assertEqual(entry['end_time'], '2024-05-15T09:00:00.500Z')

    def test_put_with_sub_second_end_credits_a_minute(self):
        entry_id = self.start().get_json()['data']['id']
        end = format_datetime(T0 + timedelta(milliseconds=400))
        response = self.http.put(f'/api/v1/time-entries/{entry_id}', json={'end_time': end}, headers=AUTH)
        self.assertEqual(response.get_json()['data']['duration_minutes'], 1)

    def test_zero_length_session_records_zero_minutes(self):
        entry_id = self.start().get_json()['data']['id']
        entry = self.http.post(f'/api/v1/time-entries/{entry_id}/stop', headers=AUTH).get_json()['data']
        self.assertEqual(entry['duration_minutes'], 0)

    def test_delete(self):
        entry_id = self.start().get_json()['data']['id']
        self.assertEqual(self.http.delete(f'/api/v1/time-entries/{entry_id}', headers=AUTH).status_code, 200)
        self.assertEqual(self.http.delete(f'/api/v1/time-entries/{entry_id}', headers=AUTH).status_code, 404)
        self.assertEqual(self.start().status_code, 201)

    def test_edit_description(self):
        entry_id = self.start().get_json()['data']['id']
        response = self.http.put(f'/api/v1/time-entries/{entry_id}', json={'notes': 'Tiles delayed'},
                                 headers=AUTH)
        entry = response.get_json()['data']
        self.assertEqual(entry['notes'], 'Tiles delayed')
        self.assertIsNone(entry['end_time'])


class TestManualEntriesAndListing(ServerTestCase):

    def test_manual_entry_allowed_while_timer_runs(self):
        self.start()
        response = self.start(start_time='2024-05-14T08:00:00Z', end_time='2024-05-14T09:30:00Z')
        self.assertEqual(response.status_code, 201)
        entry = response.get_json()['data']
        self.assertEqual(entry['origin'], 'manual')
        self.assertEqual(entry['start_time'], '2024-05-14T08:00:00Z')
        self.assertEqual(entry['duration_minutes'], 90)

    def test_manual_entry_end_before_start(self):
        response = self.start(start_time='2024-05-14T10:00:00Z', end_time='2024-05-14T09:00:00Z')
        self.assertEqual(response.status_code, 400)

    def test_list_filters(self):
        other_job = self.create_job("Deck")
        self.start(start_time='2024-05-01T08:00:00Z', end_time='2024-05-01T09:00:00Z')
        self.start(start_time='2024-05-10T08:00:00Z', end_time='2024-05-10T09:00:00Z', job_id=other_job)
        self.start()

        def listed(**params):
            response = self.http.get('/api/v1/time-entries', query_string=params, headers=AUTH)
            return [e['start_time'][:10] for e in response.get_json()['data']['entries']]

        self.assertEqual(listed(), ['2024-05-15', '2024-05-10', '2024-05-01'])
        self.assertEqual(listed(start='2024-05-02', end='2024-05-14'), ['2024-05-10'])
        self.assertEqual(listed(job_id=other_job), ['2024-05-10'])
        bad = self.http.get('/api/v1/time-entries', query_string={'start': 'May'}, headers=AUTH)
        self.assertEqual(bad.status_code, 400)


class TestHourlyRates(ServerTestCase):

    def test_jobs_list_carries_rate(self):
        self.create_job("Deck", hourly_rate=85)
        jobs = self.http.get('/api/v1/jobs', headers=AUTH).get_json()['data']['jobs']
        rates = {job['title']: job['hourly_rate'] for job in jobs}
        self.assertEqual(rates, {"Deck": 85.0, "Kitchen Reno": None})

    def test_entry_takes_job_rate_unless_given(self):
        self.job_id = self.create_job("Deck", hourly_rate=85)
        inherited = self.start(start_time='2024-05-14T08:00:00Z', end_time='2024-05-14T09:00:00Z')
        explicit = self.start(start_time='2024-05-13T08:00:00Z', end_time='2024-05-13T09:00:00Z',
                              hourly_rate=110.5)
        self.assertEqual(inherited.get_json()['data']['hourly_rate'], 85.0)
        self.assertEqual(explicit.get_json()['data']['hourly_rate'], 110.5)

    def test_running_timer_keeps_rate_after_stop(self):
        self.job_id = self.create_job("Deck", hourly_rate=60)
        entry_id = self.start().get_json()['data']['id']
        self.clock.advance(45 * 60)
        entry = self.http.post(f'/api/v1/time-entries/{entry_id}/stop', headers=AUTH).get_json()['data']
        self.assertEqual(entry['hourly_rate'], 60.0)
        self.assertEqual(entry['duration_minutes'], 45)

    def test_bad_rates_are_rejected(self):
        negative = self.start(hourly_rate=-5)
        garbage = self.start(hourly_rate='lots')
        bad_job = self.http.post('/api/v1/jobs', json={'title': 'Deck', 'hourly_rate': -1}, headers=AUTH)
        self.assertEqual(negative.status_code, 400)
        self.assertEqual(garbage.status_code, 400)
        self.assertEqual(bad_job.status_code, 400)
        self.assertIsNone(self.active())


class TestUserIsolation(ServerTestCase):

    def onboard(self, user_id):
        response = self.http.post('/api/v1/devices/onboard', json={'user_id': user_id, 'device_id': 'van-tablet'})
        self.assertEqual(response.status_code, 201)
        return {'Authorization': f"Bearer {response.get_json()['data']['api_key']}"}

    def test_users_have_independent_timers(self):
        other = self.onboard('user-2')
        mine = self.start().get_json()['data']['id']

        self.assertIsNone(self.active(other))
        self.assertEqual(self.start(headers=other).status_code, 201)
        self.assertEqual(self.http.delete(f'/api/v1/time-entries/{mine}', headers=other).status_code, 404)
        listed = self.http.get('/api/v1/time-entries', headers=other).get_json()['data']['entries']
        self.assertEqual(len(listed), 1)
        self.assertEqual(self.active()['id'], mine)

    def test_onboard_requires_ids(self):
        response = self.http.post('/api/v1/devices/onboard', json={'device_id': 'van'})
        self.assertEqual(response.status_code, 400)


if __name__ == '__main__':
    unittest.main()
