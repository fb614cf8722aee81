from fastapi import status


class PaymentError(Exception):
    """Base class for errors raised by the order and activation flow."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Payment request could not be processed"

    def __init__(self, detail: str = None, status_code: int = None):
        self.detail = detail or self.default_detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.detail)


class InvalidPlan(PaymentError):
    default_detail = "Invalid plan type specified"


class NoEligibleCourses(PaymentError):
    default_detail = "No inactive courses available to activate"


class InstitutionNotFound(PaymentError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Institution not found"


class CouponRejected(PaymentError):
    default_detail = "Coupon cannot be applied"


class InvalidCoupon(CouponRejected):
    default_detail = "Invalid or unauthorized coupon code"


class CouponExpired(CouponRejected):
    default_detail = "Coupon has expired"


class CouponInactive(CouponRejected):
    default_detail = "Coupon is no longer active"


class CouponLimitExceeded(CouponRejected):
    default_detail = "Coupon usage limit has been reached"


class SignatureInvalid(PaymentError):
    default_detail = "Invalid signature"


class SubscriptionNotFound(PaymentError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Subscription not found"


class PaymentContextMissing(PaymentError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Payment context expired and no course selection was recorded"


class GatewayError(PaymentError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Failed to create order with payment gateway"
