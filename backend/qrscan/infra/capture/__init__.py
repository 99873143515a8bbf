from .opencv_capture import OpenCvCaptureDevice, OpenCvCaptureHandle  # noqa: F401
