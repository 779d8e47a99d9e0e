import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_service_id():
    return f"srv_{uuid.uuid4()}"


def generate_order_id():
    return f"ord_{uuid.uuid4()}"


def generate_session_id():
    return str(uuid.uuid4())


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(42), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    is_super_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(42), nullable=True)  # Wallet of the admin who added this one
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Shop(Base):
    __tablename__ = "shops"

    shop_id = Column(String(100), primary_key=True, index=True)  # Slug chosen at registration
    name = Column(String(255), nullable=False)
    wallet_address = Column(String(42), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    phone = Column(String(50), nullable=True)
    owner_name = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    city = Column(String(255), nullable=True)
    country = Column(String(100), nullable=True)
    website = Column(String(500), nullable=True)
    category = Column(String(100), nullable=True)
    verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime, nullable=True)
    verified_by = Column(String(42), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    suspended_at = Column(DateTime, nullable=True)
    suspension_reason = Column(Text, nullable=True)
    cross_shop_enabled = Column(Boolean, default=True, nullable=False)
    # RCN bought from the platform and still available to issue as rewards
    purchased_rcn_balance = Column(Float, default=0, nullable=False)
    total_tokens_issued = Column(Float, default=0, nullable=False)
    total_redemptions = Column(Float, default=0, nullable=False)
    total_rcn_purchased = Column(Float, default=0, nullable=False)
    rcg_balance = Column(Float, default=0, nullable=False)
    # not_qualified, subscription_qualified, rcg_qualified, paused
    operational_status = Column(String(30), default="not_qualified", nullable=False)
    stripe_customer_id = Column(String(255), nullable=True)
    last_activity = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    services = relationship("ShopService", back_populates="shop")
    subscriptions = relationship("ShopSubscription", back_populates="shop")


class Customer(Base):
    __tablename__ = "customers"

    address = Column(String(42), primary_key=True, index=True)  # Lower-cased wallet address
    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=True)
    phone = Column(String(50), nullable=True)
    tier = Column(String(10), default="BRONZE", nullable=False)  # BRONZE, SILVER, GOLD
    lifetime_earnings = Column(Float, default=0, nullable=False)
    current_balance = Column(Float, default=0, nullable=False)
    total_redemptions = Column(Float, default=0, nullable=False)
    daily_earnings = Column(Float, default=0, nullable=False)  # Base rewards earned today
    monthly_earnings = Column(Float, default=0, nullable=False)  # Base rewards earned this month
    last_earned_date = Column(Date, nullable=True)
    referral_code = Column(String(20), unique=True, index=True, nullable=True)
    referred_by = Column(String(42), nullable=True)
    referral_count = Column(Integer, default=0, nullable=False)
    home_shop_id = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    suspended_at = Column(DateTime, nullable=True)
    suspension_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Transaction(Base):
    """Ledger row for every RCN movement"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    # mint, tier_bonus, promo_bonus, referral, redeem, transfer_in, transfer_out,
    # admin_mint, service_redemption, shop_purchase
    type = Column(String(30), index=True, nullable=False)
    customer_address = Column(String(42), index=True, nullable=True)
    shop_id = Column(String(100), index=True, nullable=True)
    counterparty_address = Column(String(42), nullable=True)  # Other side of a transfer
    amount = Column(Float, nullable=False)
    reason = Column(Text, nullable=True)
    tx_hash = Column(String(100), nullable=True)
    status = Column(String(20), default="confirmed", nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token_id = Column(String(64), unique=True, index=True, nullable=False)  # jti claim
    user_address = Column(String(42), index=True, nullable=False)
    user_role = Column(String(20), nullable=False)
    shop_id = Column(String(100), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Referral(Base):
    __tablename__ = "referrals"

    id = Column(Integer, primary_key=True, index=True)
    referral_code = Column(String(20), index=True, nullable=False)
    referrer_address = Column(String(42), index=True, nullable=False)
    referee_address = Column(String(42), unique=True, index=True, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, completed
    referrer_reward = Column(Float, nullable=True)
    referee_reward = Column(Float, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class RedemptionSession(Base):
    __tablename__ = "redemption_sessions"

    session_id = Column(String(64), primary_key=True, default=generate_session_id)
    customer_address = Column(String(42), index=True, nullable=False)
    shop_id = Column(String(100), ForeignKey("shops.shop_id"), index=True, nullable=False)
    max_amount = Column(Float, nullable=False)
    # pending, approved, rejected, expired, used
    status = Column(String(20), default="pending", nullable=False)
    expires_at = Column(DateTime, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    used_at = Column(DateTime, nullable=True)
    cancelled_by_shop = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class ShopService(Base):
    __tablename__ = "shop_services"

    service_id = Column(String(64), primary_key=True, default=generate_service_id)
    shop_id = Column(String(100), ForeignKey("shops.shop_id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), index=True, nullable=True)
    price_usd = Column(Float, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    image_url = Column(String(500), nullable=True)
    tags = Column(JSON, default=list, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    shop = relationship("Shop", back_populates="services")


class ServiceOrder(Base):
    __tablename__ = "service_orders"

    order_id = Column(String(64), primary_key=True, default=generate_order_id)
    service_id = Column(String(64), ForeignKey("shop_services.service_id"), index=True, nullable=False)
    shop_id = Column(String(100), ForeignKey("shops.shop_id"), index=True, nullable=False)
    customer_address = Column(String(42), index=True, nullable=False)
    # pending, paid, completed, cancelled, refunded, no_show
    status = Column(String(20), default="pending", index=True, nullable=False)
    total_amount = Column(Float, nullable=False)  # Service price in USD
    rcn_redeemed = Column(Float, default=0, nullable=False)
    rcn_discount_usd = Column(Float, default=0, nullable=False)
    final_amount = Column(Float, nullable=False)  # Amount charged by card
    stripe_payment_intent_id = Column(String(255), unique=True, index=True, nullable=True)
    booking_date = Column(Date, nullable=True)
    booking_time = Column(String(5), nullable=True)  # "HH:MM"
    booking_end_time = Column(String(5), nullable=True)
    notes = Column(Text, nullable=True)
    rcn_earned = Column(Float, default=0, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    stripe_refund_id = Column(String(255), nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    service = relationship("ShopService")


class ShopAvailability(Base):
    __tablename__ = "shop_availability"
    __table_args__ = (UniqueConstraint("shop_id", "day_of_week", name="uq_shop_day"),)

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(String(100), ForeignKey("shops.shop_id"), index=True, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday .. 6 = Saturday
    is_open = Column(Boolean, default=True, nullable=False)
    open_time = Column(String(5), nullable=True)  # "HH:MM"
    close_time = Column(String(5), nullable=True)
    break_start_time = Column(String(5), nullable=True)
    break_end_time = Column(String(5), nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class TimeSlotConfig(Base):
    __tablename__ = "time_slot_configs"

    shop_id = Column(String(100), ForeignKey("shops.shop_id"), primary_key=True)
    slot_duration_minutes = Column(Integer, default=60, nullable=False)
    buffer_time_minutes = Column(Integer, default=15, nullable=False)
    max_concurrent_bookings = Column(Integer, default=1, nullable=False)
    booking_advance_days = Column(Integer, default=30, nullable=False)
    min_booking_hours = Column(Integer, default=2, nullable=False)
    allow_weekend_booking = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class DateOverride(Base):
    __tablename__ = "shop_date_overrides"
    __table_args__ = (UniqueConstraint("shop_id", "override_date", name="uq_shop_override_date"),)

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(String(100), ForeignKey("shops.shop_id"), index=True, nullable=False)
    override_date = Column(Date, nullable=False)
    is_closed = Column(Boolean, default=False, nullable=False)
    custom_open_time = Column(String(5), nullable=True)
    custom_close_time = Column(String(5), nullable=True)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class ServiceDuration(Base):
    __tablename__ = "service_durations"

    service_id = Column(String(64), ForeignKey("shop_services.service_id"), primary_key=True)
    duration_minutes = Column(Integer, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ShopSubscription(Base):
    __tablename__ = "shop_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(String(100), ForeignKey("shops.shop_id"), index=True, nullable=False)
    # pending, active, cancelled, paused, defaulted
    status = Column(String(20), default="pending", index=True, nullable=False)
    monthly_amount = Column(Float, default=500, nullable=False)
    subscription_type = Column(String(20), default="standard", nullable=False)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_id = Column(String(255), unique=True, index=True, nullable=True)
    stripe_checkout_session_id = Column(String(255), nullable=True)
    stripe_status = Column(String(30), nullable=True)  # Raw Stripe status (active, past_due, ...)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    payments_made = Column(Integer, default=0, nullable=False)
    total_paid = Column(Float, default=0, nullable=False)
    last_payment_date = Column(DateTime, nullable=True)
    next_payment_date = Column(DateTime, nullable=True)
    missed_payments = Column(Integer, default=0, nullable=False)
    enrolled_at = Column(DateTime, server_default=func.now())
    activated_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    shop = relationship("Shop", back_populates="subscriptions")


class ShopPurchase(Base):
    """RCN bought by a shop from the platform"""

    __tablename__ = "shop_rcn_purchases"

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(String(100), ForeignKey("shops.shop_id"), index=True, nullable=False)
    amount = Column(Float, nullable=False)
    price_per_rcn = Column(Float, nullable=False)
    total_cost = Column(Float, nullable=False)
    pricing_tier = Column(String(20), nullable=False)  # standard, premium, elite
    payment_method = Column(String(30), nullable=False)  # card, bank_transfer, usdc
    payment_reference = Column(String(255), nullable=True)
    stripe_checkout_session_id = Column(String(255), index=True, nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, completed, failed
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(String(100), ForeignKey("shops.shop_id"), index=True, nullable=False)
    code = Column(String(20), unique=True, index=True, nullable=False)  # Stored upper-case
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    bonus_type = Column(String(20), nullable=False)  # fixed, percentage
    bonus_value = Column(Float, nullable=False)
    max_bonus = Column(Float, nullable=True)  # Cap for percentage bonuses
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    total_usage_limit = Column(Integer, nullable=True)
    per_customer_limit = Column(Integer, default=1, nullable=False)
    times_used = Column(Integer, default=0, nullable=False)
    total_bonus_issued = Column(Float, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PromoCodeUse(Base):
    __tablename__ = "promo_code_uses"

    id = Column(Integer, primary_key=True, index=True)
    promo_code_id = Column(Integer, ForeignKey("promo_codes.id"), index=True, nullable=False)
    customer_address = Column(String(42), index=True, nullable=False)
    shop_id = Column(String(100), nullable=False)
    base_reward = Column(Float, nullable=False)
    bonus_amount = Column(Float, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(255), unique=True, index=True, nullable=False)
    event_type = Column(String(100), index=True, nullable=False)
    source = Column(String(30), default="stripe", nullable=False)
    payload = Column(JSON, nullable=True)
    # received, processed, failed, ignored
    status = Column(String(20), default="received", index=True, nullable=False)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, default=1, nullable=False)
    processing_time_ms = Column(Integer, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Alert(Base):
    __tablename__ = "admin_alerts"

    id = Column(Integer, primary_key=True, index=True)
    alert_type = Column(String(50), index=True, nullable=False)
    severity = Column(String(20), default="medium", nullable=False)  # low, medium, high, critical
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    shop_id = Column(String(100), nullable=True)
    resolved = Column(Boolean, default=False, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String(42), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    receiver_address = Column(String(42), index=True, nullable=False)
    sender_address = Column(String(42), nullable=True)
    notification_type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), index=True)
