"""
Domain layer for local file conversion.
Provides the format classifier, the engine adapters, the artifact publisher
and the orchestrator that drives a conversion job, so front-ends (HTTP,
Streamlit or others) can share the same core logic.
"""

from .classifier import classify
from .errors import ConversionError, ConversionErrorKind, ConversionInProgressError, IllegalTargetSelected
from .interfaces import EngineAdapter, OrchestratorListener, TextExtractor, TranscodingEngine
from .models import Classification, ConversionTarget, ConvertedPayload, FormatFamily, SourceFile
from .publisher import Artifact, ArtifactPublisher
from .service import ConversionJob, ConversionOrchestrator, JobState, build_default_orchestrator
