import cv2
import numpy as np

from posturecoach.display import ConsoleDisplay

COLOR_INFO = (235, 235, 235)
COLOR_TIP = (0, 180, 240)
COLOR_BREATH = (80, 220, 90)


class PreviewWindow(ConsoleDisplay):
    """ConsoleDisplay that also draws a text HUD over the mirrored camera frame."""

    def __init__(self, title: str = "posturecoach", size=(640, 480), **kw):
        super().__init__(**kw)
        self.title = title
        self.size = size

    def compose(self, frame):
        if frame is None:
            w, h = self.size
            img = np.zeros((h, w, 3), dtype=np.uint8)
        else:
            img = cv2.flip(frame, 1)
        h, w = img.shape[:2]
        y = 22
        for line in (f"status: {self.status}", f"tilt: {self.tilt_text}",
                     f"rms: {self.rms_text}", f"time: {self.elapsed_text}"):
            cv2.putText(img, line, (10, y), cv2.FONT_HERSHEY_SIMPLEX, 0.6, COLOR_INFO, 2); y += 22
        # breath indicator grows with volume, up to 1.5x
        radius = int(20 * self.breath_scale)
        cv2.circle(img, (w - 50, 50), radius, COLOR_BREATH, 2)
        if self.tip_visible and self.tip_text:
            cv2.putText(img, self.tip_text, (10, h - 20), cv2.FONT_HERSHEY_SIMPLEX, 0.8, COLOR_TIP, 2, cv2.LINE_AA)
        return img

    def render(self, frame) -> int:
        cv2.imshow(self.title, self.compose(frame))
        return cv2.waitKey(1) & 0xFF

    def close(self):
        cv2.destroyWindow(self.title)
