from .institution_model import Institution, InstitutionAdmin
from .course_model import Course
from .coupon_model import Coupon
from .subscription_model import Subscription

__all__ = [
    "Institution",
    "InstitutionAdmin",
    "Course",
    "Coupon",
    "Subscription",
]
