"""Pipeline publisher for pub/sub event publishing."""

import logging

from pubsub import pub

from ..models.audio import AudioLevels
from ..models.events import PipelineOutcome

logger = logging.getLogger(__name__)

RECORDING_STATUS_TOPIC = "recording.status"
AUDIO_LEVELS_TOPIC = "audio.levels"
PIPELINE_RESULT_TOPIC = "pipeline.result"


class PipelinePublisher:
    """Publishes recording status, level bars and pipeline outcomes using pubsub.pub."""

    def __init__(self,
                 status_topic: str = RECORDING_STATUS_TOPIC,
                 levels_topic: str = AUDIO_LEVELS_TOPIC,
                 result_topic: str = PIPELINE_RESULT_TOPIC):
        """Initialize pipeline publisher.

        Args:
            status_topic: Topic for recording status strings
            levels_topic: Topic for live level bars
            result_topic: Topic for pipeline outcomes
        """
        self.status_topic = status_topic
        self.levels_topic = levels_topic
        self.result_topic = result_topic
        logger.info(f"PipelinePublisher initialized with topics: {status_topic}, {levels_topic}, {result_topic}")

    def publish_status(self, status: str) -> None:
        """Publish a recording status ("recording", "processing", "idle", "cancelled", ...)."""
        pub.sendMessage(self.status_topic, status=status)
        logger.debug(f"Published recording status: {status}")

    def publish_levels(self, levels: AudioLevels) -> None:
        pub.sendMessage(self.levels_topic, levels=levels)

    def publish_outcome(self, outcome: PipelineOutcome) -> None:
        """Publish the outcome of one pipeline run.

        Args:
            outcome: PipelineOutcome to publish
        """
        pub.sendMessage(self.result_topic, outcome=outcome)
        logger.debug(f"Published pipeline outcome: {outcome.status.value}")
