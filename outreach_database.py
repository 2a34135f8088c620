# outreach_database.py

from extensions import db
from utils.datetime_utils import utc_now


# --- User Model ---
class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    # Flask-Login required properties
    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    def get_id(self):
        return str(self.id)


# --- Account Model ---
class Account(db.Model):
    """The business sending review requests. Quotas are tracked per account."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    tier = db.Column(db.String(20), nullable=False, default='basic')  # 'trial', 'basic', 'pro'
    review_cooldown_days = db.Column(db.Integer, nullable=False, default=30)
    timezone = db.Column(db.String(50), nullable=False, default='America/New_York')
    created_at = db.Column(db.DateTime, default=utc_now)

    users = db.relationship('User', backref='account', lazy=True)


class QuotaUsage(db.Model):
    """Reserved sends per account per month, used by strict quota enforcement"""
    __table_args__ = (
        db.UniqueConstraint('account_id', 'period', name='uq_quota_usage_account_period'),
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False)
    period = db.Column(db.String(7), nullable=False)  # 'YYYY-MM'
    reserved = db.Column(db.Integer, nullable=False, default=0)


# --- Customer Model ---
class Customer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False, index=True)
    name = db.Column(db.String(200))
    email = db.Column(db.String(200), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    phone_status = db.Column(db.String(20), default='unknown')  # 'valid', 'invalid', 'unknown'
    opted_out = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(20), nullable=False, default='active')  # 'active', 'archived'
    timezone = db.Column(db.String(50), nullable=True)
    last_sent_at = db.Column(db.DateTime, nullable=True)
    send_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utc_now)

    jobs = db.relationship('Job', backref='customer', lazy=True)


# --- Job Model ---
class Job(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False, index=True)
    service_type = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='scheduled')  # 'scheduled', 'completed', 'do_not_send'
    completed_at = db.Column(db.DateTime, nullable=True)

    # Campaign id as a string, 'one_off', or NULL for auto-match
    campaign_override = db.Column(db.String(50), nullable=True)

    # NULL means no resolution recorded
    enrollment_resolution = db.Column(db.String(30), nullable=True, index=True)
    conflict_detected_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now)


# --- MessageTemplate Model ---
class MessageTemplate(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    channel = db.Column(db.String(10), nullable=False, default='email')  # 'email', 'sms'
    subject = db.Column(db.String(300), nullable=True)
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)


# --- Campaign Models ---
class Campaign(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    service_type = db.Column(db.String(50), nullable=True)  # NULL applies to all services
    status = db.Column(db.String(20), nullable=False, default='active')  # 'active', 'paused'
    created_at = db.Column(db.DateTime, default=utc_now)

    touches = db.relationship(
        'CampaignTouch',
        backref='campaign',
        lazy=True,
        cascade="all, delete-orphan",
        order_by='CampaignTouch.touch_number'
    )


class CampaignTouch(db.Model):
    __table_args__ = (
        db.UniqueConstraint('campaign_id', 'touch_number', name='uq_campaign_touch_number'),
    )

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaign.id'), nullable=False)
    touch_number = db.Column(db.Integer, nullable=False)
    channel = db.Column(db.String(10), nullable=False)  # 'email', 'sms'
    delay_hours = db.Column(db.Integer, nullable=False)
    template_id = db.Column(db.Integer, db.ForeignKey('message_template.id'), nullable=True)


class CampaignEnrollment(db.Model):
    __table_args__ = (
        # At most one active enrollment per customer, across all campaigns
        db.Index(
            'uq_campaign_enrollment_active_customer',
            'customer_id',
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index('ix_campaign_enrollment_due', 'status', 'next_touch_due_at'),
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    job_id = db.Column(db.Integer, db.ForeignKey('job.id'), nullable=False)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaign.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='active')  # 'active', 'completed', 'stopped'
    current_touch = db.Column(db.Integer, nullable=False, default=1)

    # Touches as they were when the customer enrolled
    touch_plan = db.Column(db.JSON, nullable=False)

    enrolled_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    last_touch_at = db.Column(db.DateTime, nullable=True)
    next_touch_due_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    stopped_at = db.Column(db.DateTime, nullable=True)
    stop_reason = db.Column(db.String(50), nullable=True)

    campaign = db.relationship('Campaign', lazy=True)
    customer = db.relationship('Customer', lazy=True)
    job = db.relationship('Job', lazy=True)


# --- SendLog Model ---
class SendLog(db.Model):
    __table_args__ = (
        db.UniqueConstraint('campaign_enrollment_id', 'touch_number', name='uq_send_log_enrollment_touch'),
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaign.id'), nullable=True)
    campaign_enrollment_id = db.Column(db.Integer, db.ForeignKey('campaign_enrollment.id'), nullable=True)
    touch_number = db.Column(db.Integer, nullable=True)
    template_id = db.Column(db.Integer, nullable=True)
    channel = db.Column(db.String(10), nullable=False, default='email')
    subject = db.Column(db.String(300), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='pending')
    provider_id = db.Column(db.String(200), nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    idempotency_key = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)


# --- ScheduledSend Model ---
class ScheduledSend(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False, index=True)
    customer_ids = db.Column(db.JSON, nullable=False)
    template_id = db.Column(db.Integer, nullable=True)
    channel = db.Column(db.String(10), nullable=False, default='email')
    custom_subject = db.Column(db.String(300), nullable=True)
    custom_body = db.Column(db.Text, nullable=True)
    scheduled_for = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='pending')  # 'pending', 'completed', 'failed', 'cancelled'
    claimed_at = db.Column(db.DateTime, nullable=True)
    executed_at = db.Column(db.DateTime, nullable=True)
    result = db.Column(db.JSON, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now)
