"""
Repository Layer - Data Access Abstraction
Implements the Repository Pattern for database isolation
"""

from .base_repository import BaseRepository
from .account_repository import AccountRepository, QuotaUsageRepository
from .customer_repository import CustomerRepository
from .job_repository import JobRepository
from .campaign_repository import CampaignRepository
from .enrollment_repository import EnrollmentRepository
from .send_log_repository import SendLogRepository
from .scheduled_send_repository import ScheduledSendRepository
from .message_template_repository import MessageTemplateRepository

__all__ = [
    'BaseRepository',
    'AccountRepository',
    'QuotaUsageRepository',
    'CustomerRepository',
    'JobRepository',
    'CampaignRepository',
    'EnrollmentRepository',
    'SendLogRepository',
    'ScheduledSendRepository',
    'MessageTemplateRepository',
]
