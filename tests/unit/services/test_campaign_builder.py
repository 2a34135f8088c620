"""
Tests for campaign authoring rules and matching
"""

import pytest
from types import SimpleNamespace
from unittest.mock import Mock
from repositories.campaign_repository import CampaignRepository
from repositories.enrollment_repository import EnrollmentRepository
from services.campaign_service import (
    CampaignBuilder, CampaignService, CampaignValidationError, CAMPAIGN_PRESETS, new_campaign
)


class TestNewCampaign:

    def test_touches_are_sorted(self):
        draft = new_campaign('Follow-up', [
            {'touch_number': 2, 'channel': 'sms', 'delay_hours': 72},
            {'touch_number': 1, 'channel': 'email', 'delay_hours': 24},
        ], service_type='plumbing')

        assert [t.touch_number for t in draft.touches] == [1, 2]
        assert draft.service_type == 'plumbing'

    def test_gap_in_touch_numbers(self):
        with pytest.raises(CampaignValidationError) as exc_info:
            new_campaign('Follow-up', [
                {'touch_number': 1, 'channel': 'email', 'delay_hours': 24},
                {'touch_number': 3, 'channel': 'email', 'delay_hours': 48},
            ])
        assert 'touches' in exc_info.value.field_errors

    def test_too_many_touches(self):
        touches = [{'touch_number': n, 'channel': 'email', 'delay_hours': 24} for n in range(1, 6)]
        with pytest.raises(CampaignValidationError):
            new_campaign('Follow-up', touches)

    @pytest.mark.parametrize('delay', [0, 721, '24', True])
    def test_delay_out_of_range(self, delay):
        with pytest.raises(CampaignValidationError) as exc_info:
            new_campaign('Follow-up', [{'touch_number': 1, 'channel': 'email', 'delay_hours': delay}])
        assert 'touches[1]' in exc_info.value.field_errors

    def test_unknown_channel_and_service_type(self):
        with pytest.raises(CampaignValidationError) as exc_info:
            new_campaign('Follow-up', [{'touch_number': 1, 'channel': 'fax', 'delay_hours': 24}],
                         service_type='landscaping')
        assert set(exc_info.value.field_errors) == {'touches[1]', 'service_type'}

    def test_blank_name(self):
        with pytest.raises(CampaignValidationError) as exc_info:
            new_campaign('  ', [{'touch_number': 1, 'channel': 'email', 'delay_hours': 24}])
        assert 'name' in exc_info.value.field_errors

    def test_malformed_touch(self):
        with pytest.raises(CampaignValidationError):
            new_campaign('Follow-up', [{'channel': 'email'}])


class TestCampaignBuilder:

    def test_numbers_touches_in_order(self):
        draft = CampaignBuilder('Roof follow-up', 'roofing')\
            .add_touch('email', 24)\
            .add_touch('sms', 72, template_id=9)\
            .build()

        assert [(t.touch_number, t.channel) for t in draft.touches] == [(1, 'email'), (2, 'sms')]
        assert draft.touches[1].template_id == 9

    def test_fifth_touch_is_refused(self):
        builder = CampaignBuilder('Long')
        for _ in range(4):
            builder.add_touch('email', 24)
        with pytest.raises(CampaignValidationError):
            builder.add_touch('email', 24)

    def test_empty_campaign_is_refused(self):
        with pytest.raises(CampaignValidationError):
            CampaignBuilder('Empty').build()

    @pytest.mark.parametrize('preset_id', sorted(CAMPAIGN_PRESETS))
    def test_every_preset_builds(self, preset_id):
        draft = CampaignBuilder.from_preset(preset_id).build()
        assert draft.name == CAMPAIGN_PRESETS[preset_id].name
        assert len(draft.touches) == len(CAMPAIGN_PRESETS[preset_id].touches)


class TestFindCampaignForJob:

    @pytest.fixture
    def mock_campaign_repository(self):
        return Mock(spec=CampaignRepository)

    @pytest.fixture
    def service(self, mock_campaign_repository):
        return CampaignService(mock_campaign_repository, Mock(spec=EnrollmentRepository))

    def job(self, **overrides):
        values = {'id': 5, 'account_id': 1, 'service_type': 'hvac', 'campaign_override': None}
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_active_override_wins(self, service, mock_campaign_repository):
        override = SimpleNamespace(id=8, status='active')
        mock_campaign_repository.get_for_account.return_value = override

        assert service.find_campaign_for_job(self.job(campaign_override='8')) is override
        mock_campaign_repository.get_for_account.assert_called_once_with(1, 8)
        mock_campaign_repository.find_active_for_service_type.assert_not_called()

    def test_paused_override_falls_back_to_service_type(self, service, mock_campaign_repository):
        mock_campaign_repository.get_for_account.return_value = SimpleNamespace(id=8, status='paused')
        hvac = SimpleNamespace(id=2, status='active')
        mock_campaign_repository.find_active_for_service_type.return_value = hvac

        assert service.find_campaign_for_job(self.job(campaign_override='8')) is hvac

    def test_falls_back_to_all_services_campaign(self, service, mock_campaign_repository):
        general = SimpleNamespace(id=3, status='active')
        mock_campaign_repository.find_active_for_service_type.side_effect = \
            lambda account_id, service_type: general if service_type is None else None

        assert service.find_campaign_for_job(self.job()) is general

    def test_no_campaign(self, service, mock_campaign_repository):
        mock_campaign_repository.find_active_for_service_type.return_value = None
        assert service.find_campaign_for_job(self.job()) is None

    def test_unknown_preset(self, service):
        result = service.create_from_preset(1, 'relentless')
        assert result.error_code == 'VALIDATION_ERROR'
        assert 'preset' in result.field_errors
