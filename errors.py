class SpokeTensionError(Exception):
    pass


class InvalidConfiguration(SpokeTensionError, ValueError):
    pass


class InsufficientSignal(SpokeTensionError):
    def __init__(self, count, required):
        super().__init__(
            f"No clear signal detected ({count} of {required} readings). "
            "Try again closer to the spoke."
        )
        self.count = count
        self.required = required


class CaptureError(SpokeTensionError):
    pass


class MeasurementCancelled(SpokeTensionError):
    pass
