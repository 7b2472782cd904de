class MediaAcquisitionError(RuntimeError):
    """Camera or microphone could not be opened (permission denied, no device)."""

    def __init__(self, kind: str, reason: str):
        super().__init__(f"{kind} unavailable: {reason}")
        self.kind = kind
        self.reason = reason


class DetectionUnavailable(RuntimeError):
    """Pose capability not loaded yet, or no decodable frame. Retried silently."""
