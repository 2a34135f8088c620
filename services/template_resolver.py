"""
TemplateResolver - turns a template id into subject and body text for one recipient
"""

from dataclasses import dataclass
from typing import Optional
from logging_config import get_logger
from services.enums import Channel

logger = get_logger(__name__)


DEFAULT_EMAIL_SUBJECT = "How did we do, {{CUSTOMER_NAME}}?"
DEFAULT_EMAIL_BODY = (
    "Hi {{CUSTOMER_NAME}},\n\n"
    "Thank you for choosing {{BUSINESS_NAME}}! We'd love to hear about your experience.\n\n"
    "Your feedback helps us keep improving and helps your neighbors find service they can trust.\n\n"
    "Thanks,\n{{BUSINESS_NAME}}"
)
DEFAULT_SMS_BODY = (
    "Hi {{CUSTOMER_NAME}}, thanks for choosing {{BUSINESS_NAME}}! "
    "Mind sharing how we did? Reply STOP to opt out."
)


@dataclass
class ResolvedTemplate:
    subject: Optional[str]
    body: str


class TemplateResolver:
    """Loads account templates and fills in recipient placeholders"""

    def __init__(self, message_template_repository):
        self.message_template_repository = message_template_repository

    def resolve(self,
                account_id: int,
                template_id: Optional[int],
                channel: str,
                customer_name: Optional[str] = None,
                business_name: Optional[str] = None,
                custom_subject: Optional[str] = None,
                custom_body: Optional[str] = None) -> ResolvedTemplate:
        subject, body = self._default_copy(channel)

        if template_id is not None:
            template = self.message_template_repository.get_for_account(account_id, template_id)
            if template is not None:
                subject, body = template.subject, template.body
            else:
                logger.warning("Template not found, using default copy",
                               account_id=account_id, template_id=template_id)

        if custom_subject:
            subject = custom_subject
        if custom_body:
            body = custom_body

        values = {
            '{{CUSTOMER_NAME}}': customer_name or 'there',
            '{{BUSINESS_NAME}}': business_name or 'our team',
        }
        return ResolvedTemplate(
            subject=self._render(subject, values) if channel == Channel.EMAIL.value else None,
            body=self._render(body, values)
        )

    @staticmethod
    def _default_copy(channel: str):
        if channel == Channel.SMS.value:
            return None, DEFAULT_SMS_BODY
        return DEFAULT_EMAIL_SUBJECT, DEFAULT_EMAIL_BODY

    @staticmethod
    def _render(text: Optional[str], values) -> Optional[str]:
        if text is None:
            return None
        for placeholder, value in values.items():
            text = text.replace(placeholder, value)
        return text
