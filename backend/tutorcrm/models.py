# backend/tutorcrm/models.py
from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Table, Text, Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .db import Base
from datetime import datetime

PAYMENT_STATUSES = ("unpaid", "partial", "paid")
LOCATIONS = ("office", "online", "home")
LESSON_TYPES = ("individual", "group")


class Student(Base):
    __tablename__ = "students"

    id = Column("student_id", Integer, primary_key=True, index=True)
    name = Column("name", String, nullable=False)
    email = Column("email", String, nullable=True)
    phone = Column("phone", String, nullable=True)
    notes = Column("notes", Text, nullable=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)

    subscriptions = relationship("Subscription", back_populates="student")
    lessons = relationship("Lesson", back_populates="student")


class StaffMember(Base):
    __tablename__ = "staff_members"

    id = Column("staff_id", Integer, primary_key=True, index=True)
    name = Column("name", String, nullable=False)
    email = Column("email", String, nullable=True)
    role = Column("role", String, default="teacher")

    subscriptions = relationship("Subscription", back_populates="staff")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column("subscription_id", Integer, primary_key=True, index=True)
    name = Column("name", String, nullable=False)
    student_id = Column("student_id", Integer, ForeignKey("students.student_id"), nullable=False)
    staff_id = Column("staff_id", Integer, ForeignKey("staff_members.staff_id"), nullable=False)

    start_date = Column("start_date", Date, nullable=False)
    end_date = Column("end_date", Date, nullable=False)

    # always the sum of the day-rule costs, never taken from the client
    total_cost = Column("total_cost", Float, nullable=False, default=0.0)
    payment_status = Column("payment_status", String, nullable=False, default="unpaid")
    description = Column("description", Text, nullable=True)

    created_at = Column("created_at", DateTime, default=datetime.utcnow)

    student = relationship("Student", back_populates="subscriptions")
    staff = relationship("StaffMember", back_populates="subscriptions")
    week_blocks = relationship(
        "WeekBlock",
        back_populates="subscription",
        cascade="all, delete-orphan",
        order_by="WeekBlock.week_number",
    )
    paid_days = relationship(
        "PaidDayAllocation",
        back_populates="subscription",
        cascade="all, delete-orphan",
        order_by="PaidDayAllocation.id",
    )
    payments = relationship("Payment", back_populates="subscription", order_by="Payment.date")

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


class WeekBlock(Base):
    __tablename__ = "week_blocks"

    id = Column("week_block_id", Integer, primary_key=True, index=True)
    subscription_id = Column(
        "subscription_id", Integer, ForeignKey("subscriptions.subscription_id"), nullable=False
    )

    week_number = Column("week_number", Integer, nullable=False)   # 1..n
    start_date = Column("start_date", Date, nullable=False)
    end_date = Column("end_date", Date, nullable=False)

    subscription = relationship("Subscription", back_populates="week_blocks")
    day_rules = relationship(
        "DayRule",
        back_populates="week_block",
        cascade="all, delete-orphan",
        order_by="DayRule.position",
    )

    __table_args__ = (
        UniqueConstraint("subscription_id", "week_number", name="unique_week_per_subscription"),
    )


class DayRule(Base):
    __tablename__ = "day_rules"

    id = Column("day_rule_id", Integer, primary_key=True, index=True)
    week_block_id = Column(
        "week_block_id", Integer, ForeignKey("week_blocks.week_block_id"), nullable=False
    )

    # 0=Sun, 1=Mon, ..., 6=Sat
    weekday = Column("weekday", Integer, nullable=False)
    # index inside the week block, in the order the client sent the days
    position = Column("position", Integer, nullable=False, default=0)
    start_time = Column("start_time", Time, nullable=False)
    end_time = Column("end_time", Time, nullable=False)
    cost = Column("cost", Float, nullable=False, default=0.0)
    location = Column("location", String, nullable=False, default="office")
    notes = Column("notes", Text, nullable=True)

    week_block = relationship("WeekBlock", back_populates="day_rules")


class PaidDayAllocation(Base):
    __tablename__ = "paid_day_allocations"

    id = Column("allocation_id", Integer, primary_key=True, index=True)
    subscription_id = Column(
        "subscription_id", Integer, ForeignKey("subscriptions.subscription_id"), nullable=False
    )
    day_rule_id = Column("day_rule_id", Integer, ForeignKey("day_rules.day_rule_id"), nullable=False)
    is_paid = Column("is_paid", Boolean, default=True)
    payment_amount = Column("payment_amount", Float, nullable=False, default=0.0)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)

    subscription = relationship("Subscription", back_populates="paid_days")
    day_rule = relationship("DayRule")

    __table_args__ = (
        UniqueConstraint("subscription_id", "day_rule_id", name="unique_paid_day_per_subscription"),
    )


payment_lessons = Table(
    "payment_lessons",
    Base.metadata,
    Column("payment_id", Integer, ForeignKey("payments.payment_id"), primary_key=True),
    Column("lesson_id", Integer, ForeignKey("lessons.lesson_id"), primary_key=True),
)


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column("lesson_id", Integer, primary_key=True, index=True)
    student_id = Column("student_id", Integer, ForeignKey("students.student_id"), nullable=True)
    staff_id = Column("staff_id", Integer, ForeignKey("staff_members.staff_id"), nullable=True)
    subscription_id = Column(
        "subscription_id", Integer, ForeignKey("subscriptions.subscription_id"), nullable=True
    )

    start_at = Column("start_at", DateTime, nullable=False, index=True)
    end_at = Column("end_at", DateTime, nullable=False)
    cost = Column("cost", Float, nullable=False, default=0.0)
    lesson_type = Column("lesson_type", String, default="individual")
    location = Column("location", String, nullable=True)
    notes = Column("notes", Text, nullable=True)

    is_paid = Column("is_paid", Boolean, default=False)
    is_cancelled = Column("is_cancelled", Boolean, default=False)
    is_completed = Column("is_completed", Boolean, default=False)

    student = relationship("Student", back_populates="lessons")


class Payment(Base):
    __tablename__ = "payments"

    id = Column("payment_id", Integer, primary_key=True, index=True)
    student_id = Column("student_id", Integer, ForeignKey("students.student_id"), nullable=False)
    subscription_id = Column(
        "subscription_id", Integer, ForeignKey("subscriptions.subscription_id"), nullable=True
    )
    amount = Column("amount", Float, nullable=False)
    date = Column("date", Date, nullable=False)
    description = Column("description", Text, nullable=True)
    type = Column("type", String, default="payment")   # payment | prepayment
    created_at = Column("created_at", DateTime, default=datetime.utcnow)

    subscription = relationship("Subscription", back_populates="payments")
    lessons = relationship("Lesson", secondary=payment_lessons)
