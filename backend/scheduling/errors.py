"""Exceptions raised by the scheduling core and the booking service.

Ordinary unavailability (a taken or blocked slot, too little notice) is never
raised; it is returned as a reason string. Exceptions are reserved for
corrupted configuration and for rejected writes.
"""


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class SchedulingConfigurationError(SchedulingError):
    """Stored scheduling data is corrupt and availability cannot be computed."""


class InvalidTimeFormatError(SchedulingConfigurationError):
    def __init__(self, value):
        super().__init__(f'Invalid time format: {value!r}')
        self.value = value


class ServiceNotFoundError(SchedulingConfigurationError):
    def __init__(self, service_id):
        super().__init__('Service not found or inactive')
        self.service_id = service_id


class BookingError(SchedulingError):
    """A booking or reschedule write was rejected."""


class SlotUnavailableError(BookingError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DuplicateBookingError(BookingError):
    def __init__(self):
        super().__init__('You already have an appointment at this time')


class AppointmentNotFoundError(BookingError):
    def __init__(self, appointment_id):
        super().__init__('Appointment not found.')
        self.appointment_id = appointment_id


class InvalidAppointmentStateError(BookingError):
    pass
