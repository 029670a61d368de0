import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    phone = Column(String(20), unique=True, index=True, nullable=True)  # digits only
    cpf = Column(String(11), nullable=True)  # digits only
    password_hash = Column(String(255), nullable=True)  # null until the customer sets a password
    role = Column(String(20), default="CUSTOMER", nullable=False)  # CUSTOMER, ADMIN
    email_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    bookings = relationship("Booking", back_populates="user")
    credits = relationship("Credit", back_populates="user")


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)  # sala-a, sala-b, sala-c
    description = Column(Text, nullable=True)
    capacity = Column(Integer, default=1, nullable=False)
    size_m2 = Column(Integer, nullable=True)
    tier = Column(Integer, default=1, nullable=False)  # 1 = premium; credits flow to same or higher tier number
    hourly_rate = Column(Integer, nullable=False)  # cents
    amenities = Column(JSON, nullable=True)  # list of strings
    image_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    products = relationship("Product", back_populates="room")
    bookings = relationship("Booking", back_populates="room")


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), index=True, nullable=True)
    # HOURLY_RATE, PACKAGE_10H, PACKAGE_20H, PACKAGE_40H, SHIFT_FIXED, DAY_PASS, SATURDAY_HOUR, SATURDAY_5H
    type = Column(String(30), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    price = Column(Integer, nullable=False)  # cents
    hours_included = Column(Integer, nullable=True)
    validity_days = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    room = relationship("Room", back_populates="products")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    start_time = Column(DateTime, nullable=False, index=True)  # naive UTC
    end_time = Column(DateTime, nullable=False)  # naive UTC
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, CONFIRMED, CANCELLED, COMPLETED, NO_SHOW
    payment_status = Column(String(20), default="PENDING", nullable=False)  # PENDING, APPROVED, REJECTED, REFUNDED
    financial_status = Column(
        String(20), default="PENDING_PAYMENT", nullable=False
    )  # PENDING_PAYMENT, PAID, COURTESY, REFUNDED
    booking_type = Column(String(20), default="HOURLY", nullable=False)  # HOURLY, SHIFT
    origin = Column(String(20), default="COMMERCIAL", nullable=False)  # COMMERCIAL, ADMIN_MANUAL, ADMIN_COURTESY
    courtesy_reason = Column(Text, nullable=True)

    # Amounts (cents). gross - discount = net; net is covered by credits_used + amount_paid
    gross_amount = Column(Integer, default=0, nullable=False)
    discount_amount = Column(Integer, default=0, nullable=False)
    net_amount = Column(Integer, default=0, nullable=False)
    amount_paid = Column(Integer, default=0, nullable=False)
    credits_used = Column(Integer, default=0, nullable=False)
    credit_ids = Column(JSON, nullable=True)  # ids consumed, restored on cancellation
    coupon_code = Column(String(50), nullable=True)
    coupon_snapshot = Column(JSON, nullable=True)
    override_reason = Column(Text, nullable=True)  # admin price override

    payment_method = Column(String(20), nullable=True)  # PIX, CARD
    payment_id = Column(String(100), nullable=True)  # gateway charge id
    expires_at = Column(DateTime, nullable=True)  # unpaid PENDING bookings are released after this

    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    cancel_source = Column(String(20), nullable=True)  # USER, ADMIN, SYSTEM
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="bookings")
    room = relationship("Room", back_populates="bookings")
    product = relationship("Product")
    payments = relationship("Payment", back_populates="booking")


class Credit(Base):
    __tablename__ = "credits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)  # null = any room
    amount = Column(Integer, nullable=False)  # cents
    remaining_amount = Column(Integer, default=0, nullable=False)  # cents
    type = Column(String(20), default="MANUAL", nullable=False)  # MANUAL, PURCHASE, SUBLET, REFUND, SATURDAY
    usage_type = Column(String(20), nullable=True)  # HOURLY, SHIFT, SATURDAY_HOURLY, SATURDAY_SHIFT; null = legacy
    status = Column(
        String(20), default="CONFIRMED", nullable=False
    )  # PENDING, CONFIRMED, USED, EXPIRED, REFUNDED, CANCELLED
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    source_booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    reference_month = Column(Integer, nullable=True)
    reference_year = Column(Integer, nullable=True)
    hours = Column(Integer, nullable=True)
    gross_amount = Column(Integer, nullable=True)
    discount_amount = Column(Integer, nullable=True)
    net_amount = Column(Integer, nullable=True)
    coupon_code = Column(String(50), nullable=True)
    coupon_snapshot = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="credits")
    room = relationship("Room")
    product = relationship("Product")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, index=True)
    purchase_id = Column(Integer, ForeignKey("credits.id"), nullable=True, index=True)  # credit purchase
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    amount = Column(Integer, nullable=False)  # cents
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, IN_PROCESS, APPROVED, REJECTED, REFUNDED, CANCELLED
    method = Column(String(20), nullable=False)  # PIX, CARD
    installment_count = Column(Integer, nullable=True)
    external_id = Column(String(100), unique=True, nullable=True)
    external_url = Column(String(500), nullable=True)
    idempotency_key = Column(String(150), unique=True, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    booking = relationship("Booking", back_populates="payments")


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False)  # stored upper case
    discount_type = Column(String(20), nullable=False)  # PERCENT, FIXED, PRICE_OVERRIDE
    value = Column(Integer, nullable=False)  # percent points or cents
    description = Column(String(255), nullable=True)
    single_use_per_user = Column(Boolean, default=False, nullable=False)
    is_dev_coupon = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)
    min_amount_cents = Column(Integer, nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CouponUsage(Base):
    __tablename__ = "coupon_usages"
    __table_args__ = (
        UniqueConstraint("user_id", "coupon_code", "context", name="uq_coupon_usage_user_code_context"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    coupon_code = Column(String(50), nullable=False)
    context = Column(String(20), nullable=False)  # BOOKING, CREDIT_PURCHASE
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    credit_id = Column(Integer, ForeignKey("credits.id"), nullable=True)
    status = Column(String(20), default="USED", nullable=False)  # USED, RESTORED
    used_at = Column(DateTime, server_default=func.now())
    restored_at = Column(DateTime, nullable=True)


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(150), unique=True, index=True, nullable=False)
    event_type = Column(String(60), nullable=False)
    payment_id = Column(String(100), nullable=True)
    external_reference = Column(String(150), nullable=True)
    status = Column(String(20), default="PROCESSING", nullable=False)  # PROCESSING, PROCESSED, IGNORED, FAILED
    payload = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(60), nullable=False, index=True)
    source = Column(String(20), default="SYSTEM", nullable=False)  # USER, ADMIN, SYSTEM
    actor_id = Column(String(64), nullable=True)
    actor_email = Column(String(255), nullable=True)
    actor_ip = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    target_type = Column(String(50), nullable=True)
    target_id = Column(String(64), nullable=True, index=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    description = Column(String(255), nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class RefundRequest(Base):
    __tablename__ = "refund_requests"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Integer, nullable=False)  # cents
    refund_type = Column(String(20), default="MONEY", nullable=False)  # MONEY, CREDITS
    pix_key_type = Column(String(20), nullable=True)  # CPF, CNPJ, EMAIL, PHONE, RANDOM
    pix_key = Column(String(100), nullable=True)
    status = Column(String(20), default="REQUESTED", nullable=False)  # REQUESTED, APPROVED, PAID, REJECTED
    reason = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    booking = relationship("Booking")
    user = relationship("User")
