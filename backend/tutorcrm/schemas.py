# backend/tutorcrm/schemas.py
from pydantic import BaseModel, Field
from datetime import date, datetime, time
from typing import List, Optional, Literal, Union

PaymentStatus = Literal["unpaid", "partial", "paid"]
Location = Literal["office", "online", "home"]
LessonType = Literal["individual", "group"]

# --------------------------------------------
# Students / staff (lookup collaborators)
# --------------------------------------------
class StudentCreate(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


class StudentOut(StudentCreate):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StaffCreate(BaseModel):
    name: str
    email: Optional[str] = None
    role: str = "teacher"


class StaffOut(StaffCreate):
    id: int

    class Config:
        from_attributes = True


# --------------------------------------------
# Subscription input
#
# Deliberately loose: the schedule builder reports the first broken rule
# with a single message, so most fields are optional strings here.
# --------------------------------------------
class DayRuleIn(BaseModel):
    weekday: Optional[int] = None          # 0=Sun .. 6=Sat
    start_time: Optional[str] = None       # "HH:MM"
    end_time: Optional[str] = None
    cost: Optional[Union[float, str]] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class WeekBlockIn(BaseModel):
    week_number: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    days: List[DayRuleIn] = []


class SubscriptionCreate(BaseModel):
    name: Optional[str] = None
    student_id: Optional[int] = None
    staff_id: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    description: Optional[str] = None
    weeks: List[WeekBlockIn] = []
    payment_status: Optional[str] = None
    # only read when payment_status == "partial": "weekIndex-dayIndex" tokens or bare numbers
    paid_days: List[Union[int, str]] = []


class SubscriptionUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None


# --------------------------------------------
# Subscription output
# --------------------------------------------
class DayRuleOut(BaseModel):
    id: int
    weekday: int
    position: int
    start_time: time
    end_time: time
    cost: float
    location: str
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class WeekBlockOut(BaseModel):
    id: int
    week_number: int
    start_date: date
    end_date: date
    day_rules: List[DayRuleOut] = []

    class Config:
        from_attributes = True


class PaidDayAllocationOut(BaseModel):
    id: int
    day_rule_id: int
    is_paid: bool
    payment_amount: float

    class Config:
        from_attributes = True


class SubscriptionOut(BaseModel):
    id: int
    name: str
    student_id: int
    staff_id: int
    start_date: date
    end_date: date
    total_cost: float
    payment_status: PaymentStatus
    is_paid: bool
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    week_blocks: List[WeekBlockOut] = []
    paid_days: List[PaidDayAllocationOut] = []

    class Config:
        from_attributes = True


# --------------------------------------------
# Payments
# --------------------------------------------
class PaymentCreate(BaseModel):
    amount: Optional[float] = None
    date: Optional[str] = None
    description: Optional[str] = None


class SubscriptionPrepaymentCreate(PaymentCreate):
    # durable day_rule ids; empty means "everything not paid yet"
    paid_day_ids: List[int] = []


class PrepaymentPeriod(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class StudentPrepaymentCreate(PaymentCreate):
    student_id: Optional[int] = None
    period: PrepaymentPeriod = Field(default_factory=PrepaymentPeriod)


class PaymentOut(BaseModel):
    id: int
    student_id: int
    subscription_id: Optional[int] = None
    amount: float
    date: date
    description: Optional[str] = None
    type: str

    class Config:
        from_attributes = True


class SubscriptionPrepaymentOut(BaseModel):
    payment: PaymentOut
    paid_days: List[PaidDayAllocationOut]
    total_cost: float
    days_count: int
    payment_status: PaymentStatus


class StudentPrepaymentOut(BaseModel):
    payment: PaymentOut
    lesson_ids: List[int]
    total_cost: float
    lessons_count: int


# --------------------------------------------
# Lessons
# --------------------------------------------
class SchedulePattern(BaseModel):
    days: List[int] = []                # 0=Sun .. 6=Sat
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    time: Optional[str] = None          # "HH:MM"
    duration: int = 60                  # minutes


class BulkLessonCreate(BaseModel):
    schedule_pattern: SchedulePattern
    cost: Optional[float] = None
    staff_id: Optional[int] = None
    lesson_type: LessonType = "individual"
    student_id: Optional[int] = None
    student_ids: List[int] = []
    notes: Optional[str] = None
    is_paid: bool = False


class OccurrenceOut(BaseModel):
    start_at: datetime
    end_at: datetime


class BulkPreviewOut(BaseModel):
    total: int
    occurrences: List[OccurrenceOut]


class BulkLessonResult(BaseModel):
    count: int
    lesson_ids: List[int]


class LessonOut(BaseModel):
    id: int
    student_id: Optional[int] = None
    staff_id: Optional[int] = None
    subscription_id: Optional[int] = None
    start_at: datetime
    end_at: datetime
    cost: float
    lesson_type: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    is_paid: bool
    is_cancelled: bool
    is_completed: bool

    class Config:
        from_attributes = True


class GeneratedLessonsOut(BaseModel):
    count: int
    lessons: List[LessonOut]
