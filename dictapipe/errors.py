"""Error taxonomy for the capture-to-text pipeline.

Every failure the core reports is a ``DictaPipeError``. The category base
classes let collaborators decide how loudly to react: device errors are
recoverable through reconnect, state errors are benign no-ops, content errors
mean "nothing to do", and model / cloud errors are fatal to one call only.
"""


class DictaPipeError(Exception):
    """Base class for all pipeline errors."""

    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code


# Device errors

class DeviceError(DictaPipeError):
    """Audio device error."""

    code = "device_error"


class DeviceNotFound(DeviceError):
    """No usable input device was found."""

    code = "device_not_found"


class UnsupportedFormat(DeviceError):
    """The input device supports neither float32 nor int16 samples."""

    code = "unsupported_format"


class StreamInitFailed(DeviceError):
    """The input stream could not be opened or started."""

    code = "stream_init_failed"


class InitTimeout(DeviceError):
    """The audio thread did not report back in time."""

    code = "init_timeout"


class NoMicrophone(DeviceError):
    """No microphone sample rate is on record."""

    code = "no_microphone"


# State errors

class StateError(DictaPipeError):
    """Illegal recording state transition."""

    code = "state_error"


class AlreadyRecording(StateError):
    """A recording session is already armed."""

    code = "already_recording"


class NotRecording(StateError):
    """No recording session is armed."""

    code = "not_recording"


class AlreadyProcessing(StateError):
    """A pipeline run is already in progress."""

    code = "already_processing"


# Content errors

class ContentError(DictaPipeError):
    """Nothing worth transcribing."""

    code = "content_error"


class NoSpeech(ContentError):
    """No speech was detected."""

    code = "no_speech"


class EmptyRecording(ContentError):
    """The recording captured no samples."""

    code = "empty_recording"


class CaptureBufferPoisoned(DictaPipeError):
    """The capture buffer was left inconsistent by a failed access and has been reset."""

    code = "buffer_poisoned"


# Model errors

class ModelError(DictaPipeError):
    """Local model error."""

    code = "model_error"


class ModelNotDownloaded(ModelError):
    """The requested model file is not on disk."""

    code = "model_not_downloaded"


class ModelLoadFailed(ModelError):
    """The model file could not be loaded."""

    code = "model_load_failed"


class InvalidModelFile(ModelError):
    """The model file is corrupted or incomplete."""

    code = "invalid_model_file"


class ModelInferenceError(ModelError):
    """Inference failed."""

    code = "inference_failed"


class TokenizationError(ModelError):
    """The prompt could not be tokenized."""

    code = "tokenization_failed"


# Cloud errors

class CloudError(DictaPipeError):
    """Remote provider error."""

    code = "cloud_error"


class MissingApiKey(CloudError):
    """No API key is configured for the provider."""

    code = "missing_api_key"


class MissingEndpoint(CloudError):
    """No endpoint is configured for the provider."""

    code = "missing_endpoint"


class InvalidEndpoint(CloudError):
    """The configured endpoint URL is not acceptable."""

    code = "invalid_endpoint"


class CloudRequestFailed(CloudError):
    """The provider request failed."""

    code = "cloud_request_failed"

    def __init__(self, message: str = "", status: int = 0):
        super().__init__(message)
        self.status = status


class CloudResponseInvalid(CloudError):
    """The provider response could not be parsed."""

    code = "cloud_response_invalid"
