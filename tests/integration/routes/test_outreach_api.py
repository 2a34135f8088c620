"""
HTTP API tests through the Flask test client.

Each request ends by removing the session, so tests keep ids rather than
objects and query again afterwards.
"""

import pytest
from datetime import timedelta
from outreach_database import Campaign, CampaignEnrollment, Customer, Job, ScheduledSend
from utils.datetime_utils import utc_now, format_utc_iso
from tests.fixtures.outreach_factories import create_customer, create_job, create_campaign


@pytest.fixture
def api(client, services):
    return client


class TestCampaignApi:

    def test_create_from_preset(self, api, db_session):
        response = api.post('/api/campaigns', json={'preset': 'standard', 'service_type': 'hvac'})

        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['name'] == 'Standard Follow-Up'
        assert [t['channel'] for t in data['touches']] == ['email', 'email', 'sms']
        assert db_session.get(Campaign, data['id']).account_id == 1

    def test_create_with_touches(self, api):
        response = api.post('/api/campaigns', json={
            'name': 'Roof follow-up',
            'service_type': 'roofing',
            'touches': [
                {'touch_number': 1, 'channel': 'sms', 'delay_hours': 4},
                {'touch_number': 2, 'channel': 'email', 'delay_hours': 48},
            ],
        })

        assert response.status_code == 201
        assert response.get_json()['data']['service_type'] == 'roofing'

    def test_invalid_touches(self, api):
        response = api.post('/api/campaigns', json={
            'name': 'Broken',
            'touches': [{'touch_number': 2, 'channel': 'email', 'delay_hours': 24}],
        })

        assert response.status_code == 400
        body = response.get_json()
        assert body['error_code'] == 'VALIDATION_ERROR'
        assert 'touches' in body['field_errors']

    def test_presets(self, api):
        response = api.get('/api/campaigns/presets')
        ids = [p['id'] for p in response.get_json()['data']]
        assert ids == ['conservative', 'standard', 'aggressive']

    def test_pause_stops_enrollments(self, api, db_session):
        customer = create_customer(db_session)
        campaign = create_campaign(db_session)
        job = create_job(db_session, customer)
        db_session.add(CampaignEnrollment(
            account_id=1, customer_id=customer.id, job_id=job.id, campaign_id=campaign.id,
            status='active', touch_plan=[{'touch_number': 1, 'channel': 'email', 'delay_hours': 24}],
            enrolled_at=utc_now()
        ))
        db_session.flush()
        campaign_id = campaign.id

        response = api.post(f'/api/campaigns/{campaign_id}/pause')

        assert response.status_code == 200
        assert response.get_json()['data']['enrollments_stopped'] == 1
        assert db_session.get(Campaign, campaign_id).status == 'paused'

    def test_pause_other_accounts_campaign(self, api, db_session):
        campaign = create_campaign(db_session, account_id=2)
        assert api.post(f'/api/campaigns/{campaign.id}/pause').status_code == 404


class TestEnrollmentApi:

    def test_evaluate_and_resolve(self, api, db_session):
        customer = create_customer(db_session)
        create_campaign(db_session)
        create_campaign(db_session, service_type='plumbing', name='Plumbing')
        first_job_id = create_job(db_session, customer).id
        second_job_id = create_job(db_session, customer, service_type='plumbing').id

        first = api.post('/api/enrollments/evaluate', json={'job_id': first_job_id})
        assert first.get_json()['data']['outcome'] == 'enrolled'

        second = api.post('/api/enrollments/evaluate', json={'job_id': second_job_id})
        data = second.get_json()['data']
        assert data['outcome'] == 'conflict'
        assert data['blocking_enrollment']['enrollment_id'] == first.get_json()['data']['enrollment_id']

        skipped = api.post(f'/api/enrollments/{second_job_id}/resolve', json={'action': 'skip'})
        assert skipped.get_json()['data']['resolution'] == 'skipped'

        again = api.post(f'/api/enrollments/{second_job_id}/resolve', json={'action': 'queue_after'})
        assert again.status_code == 409
        assert again.get_json()['error_code'] == 'INVALID_STATE'

        reverted = api.post(f'/api/enrollments/{second_job_id}/revert')
        assert reverted.get_json()['data']['outcome'] == 'conflict'
        assert db_session.get(Job, second_job_id).enrollment_resolution == 'conflict'

    def test_evaluate_needs_integer_job_id(self, api):
        response = api.post('/api/enrollments/evaluate', json={'job_id': 'seven'})
        assert response.status_code == 400
        assert 'job_id' in response.get_json()['field_errors']

    def test_resolve_needs_action(self, api, db_session):
        job = create_job(db_session, create_customer(db_session))
        assert api.post(f'/api/enrollments/{job.id}/resolve', json={}).status_code == 400

    def test_unknown_job(self, api):
        response = api.post('/api/enrollments/evaluate', json={'job_id': 987654})
        assert response.status_code == 404

    def test_preflight_replace(self, api, db_session):
        job_id = create_job(db_session, create_customer(db_session), status='scheduled', completed_at=None).id

        response = api.post(f'/api/enrollments/{job_id}/preflight-replace')

        assert response.status_code == 200
        assert db_session.get(Job, job_id).enrollment_resolution == 'replace_on_complete'

    def test_stop_enrollment(self, api, db_session):
        customer = create_customer(db_session)
        create_campaign(db_session)
        job_id = create_job(db_session, customer).id
        enrollment_id = api.post('/api/enrollments/evaluate', json={'job_id': job_id}).get_json()['data']['enrollment_id']

        response = api.post(f'/api/enrollments/{enrollment_id}/stop', json={'reason': 'review_clicked'})

        assert response.status_code == 200
        enrollment = db_session.get(CampaignEnrollment, enrollment_id)
        assert enrollment.status == 'stopped'
        assert enrollment.stop_reason == 'review_clicked'

    def test_stop_customer_enrollments(self, api, db_session):
        customer_id = create_customer(db_session).id
        create_campaign(db_session)
        job_id = create_job(db_session, db_session.get(Customer, customer_id)).id
        api.post('/api/enrollments/evaluate', json={'job_id': job_id})

        response = api.post(f'/api/customers/{customer_id}/stop-enrollments', json={'reason': 'review_clicked'})

        assert response.status_code == 200
        assert response.get_json()['data'] == {'customer_id': customer_id, 'stopped': 1}
        assert db_session.query(CampaignEnrollment).filter_by(customer_id=customer_id).one().status == 'stopped'

    def test_stop_customer_enrollments_needs_reason(self, api, db_session):
        customer_id = create_customer(db_session).id
        assert api.post(f'/api/customers/{customer_id}/stop-enrollments', json={}).status_code == 400

    def test_stop_other_accounts_customer(self, api, db_session):
        customer_id = create_customer(db_session, account_id=2).id
        response = api.post(f'/api/customers/{customer_id}/stop-enrollments', json={'reason': 'opted_out'})
        assert response.status_code == 404


class TestSendApi:

    def test_batch_send(self, api, db_session, fake_transport):
        ids = [create_customer(db_session, email=f'c{n}@example.com').id for n in range(2)]
        ids.append(create_customer(db_session, opted_out=True).id)

        response = api.post('/api/sends', json={'customer_ids': ids + [987654], 'channel': 'email'})

        assert response.status_code == 200
        data = response.get_json()['data']
        assert (data['sent'], data['skipped'], data['failed']) == (2, 2, 0)
        assert {d['customer_id']: d.get('reason') for d in data['details'] if d['status'] == 'skipped'} == \
            {ids[2]: 'opted_out', 987654: 'not_found'}
        assert len(fake_transport.sent) == 2

    def test_too_many_recipients(self, api, fake_transport):
        response = api.post('/api/sends', json={'customer_ids': list(range(1, 27))})

        assert response.status_code == 400
        assert 'customer_ids' in response.get_json()['field_errors']
        assert fake_transport.sent == []

    def test_empty_body(self, api):
        assert api.post('/api/sends', json={}).status_code == 400

    def test_schedule_and_bulk_cancel(self, api, db_session):
        customer_id = create_customer(db_session).id
        when = format_utc_iso(utc_now() + timedelta(hours=2))

        created = api.post('/api/sends', json={'customer_ids': [customer_id], 'scheduled_for': when})
        assert created.status_code == 201
        scheduled_id = created.get_json()['data']['id']
        assert created.get_json()['data']['status'] == 'pending'

        cancelled = api.post('/api/scheduled-sends/bulk-cancel', json={'ids': [scheduled_id]})
        assert cancelled.get_json()['data'] == {'cancelled': 1}

        again = api.post(f'/api/scheduled-sends/{scheduled_id}/cancel')
        assert again.status_code == 409
        assert again.get_json()['details'] == {'ids': [scheduled_id]}
        assert db_session.get(ScheduledSend, scheduled_id).status == 'cancelled'

    def test_schedule_in_the_past(self, api, db_session):
        customer_id = create_customer(db_session).id
        when = format_utc_iso(utc_now() - timedelta(hours=1))

        response = api.post('/api/sends', json={'customer_ids': [customer_id], 'scheduled_for': when})

        assert response.status_code == 400
        assert 'scheduled_for' in response.get_json()['field_errors']

    def test_unparseable_schedule_time(self, api):
        response = api.post('/api/sends', json={'customer_ids': [1], 'scheduled_for': 'tomorrow'})
        assert response.status_code == 400

    def test_bulk_reschedule(self, api, db_session):
        customer_id = create_customer(db_session).id
        when = format_utc_iso(utc_now() + timedelta(hours=2))
        scheduled_id = api.post('/api/sends', json={'customer_ids': [customer_id], 'scheduled_for': when})\
            .get_json()['data']['id']

        response = api.post('/api/scheduled-sends/bulk-reschedule', json={
            'ids': [scheduled_id],
            'new_time': format_utc_iso(utc_now() + timedelta(days=1)),
        })

        assert response.get_json()['data'] == {'rescheduled': 1}

    def test_bulk_reschedule_needs_time(self, api):
        response = api.post('/api/scheduled-sends/bulk-reschedule', json={'ids': [1]})
        assert response.status_code == 400

    def test_ambiguous_sends(self, api):
        response = api.get('/api/sends/ambiguous')
        assert response.status_code == 200
        assert response.get_json()['data'] == []

    def test_quota_exceeded_is_402(self, api, db_session, app):
        customer_id = create_customer(db_session).id
        app.config['MONTHLY_SEND_LIMITS'] = {'trial': 25, 'basic': 0, 'pro': 500}
        try:
            response = api.post('/api/sends', json={'customer_ids': [customer_id]})
        finally:
            app.config['MONTHLY_SEND_LIMITS'] = {'trial': 25, 'basic': 200, 'pro': 500}

        assert response.status_code == 402
        assert response.get_json()['details']['remaining'] == 0


class TestMisc:

    def test_health(self, api):
        response = api.get('/health')
        assert response.status_code == 200

    def test_request_id_is_echoed(self, api):
        response = api.get('/health', headers={'X-Request-ID': 'abc-123'})
        assert response.headers['X-Request-ID'] == 'abc-123'

    def test_unknown_route(self, api):
        response = api.get('/api/nothing-here')
        assert response.status_code == 404
        assert response.get_json()['error_code'] == 'NOT_FOUND'
