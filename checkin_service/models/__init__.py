from .booking import Booking  # noqa: F401
