"""Transformer emotion analyzer - optional confirmatory signal.

Provides ML-based emotion classification as a secondary layer to cross-check
the lexicon scores. It never replaces them: the lexicon path is
deterministic and auditable, the model is not.

Note: the emotion model adds ~100-200ms per utterance on CPU. Run it once
per call at close, not per turn.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .text_normalizer import normalize_text

logger = logging.getLogger(__name__)

# Model emotion label -> engine axis
LABEL_AXES: Dict[str, str] = {
    "fear": "anxiety",
    "sadness": "anxiety",
    "anger": "agitation",
    "disgust": "agitation",
    "surprise": "confusion",
    "joy": "positivity",
}


@dataclass(frozen=True)
class SecondaryAssessment:
    """Per-axis emotion estimate from the secondary model."""
    anxiety: float
    agitation: float
    confusion: float
    positivity: float
    confidence: float  # 0.0 to 1.0
    model_name: str

    def __post_init__(self):
        for name in ("anxiety", "agitation", "confusion", "positivity", "confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be 0.0-1.0, got {value}")

    def to_dict(self) -> dict:
        return {
            "anxiety": round(self.anxiety, 3),
            "agitation": round(self.agitation, 3),
            "confusion": round(self.confusion, 3),
            "positivity": round(self.positivity, 3),
            "confidence": round(self.confidence, 3),
            "modelName": self.model_name,
        }


class TransformerEmotionAnalyzer:
    """Emotion classifier using a HuggingFace Transformers pipeline.

    Uses a DistilRoBERTa emotion model for CPU inference.
    Falls back gracefully if model loading fails.
    """

    DEFAULT_MODEL = "j-hartmann/emotion-english-distilroberta-base"
    MAX_LENGTH = 512  # Model max token length

    def __init__(
        self,
        model_name: Optional[str] = None,
        enabled: bool = True,
        device: str = "cpu",
    ):
        """Initialize emotion analyzer.

        Args:
            model_name: HuggingFace model name (default: DistilRoBERTa emotion)
            enabled: Whether to enable model analysis
            device: Device for inference ("cpu" or "cuda")
        """
        self.model_name = model_name or self.DEFAULT_MODEL
        self.enabled = enabled
        self.device = device
        self._pipeline = None
        self._initialized = False
        self._init_error: Optional[str] = None

        if enabled:
            self._initialize_model()

    def _initialize_model(self) -> None:
        """Lazy initialization of the classification pipeline."""
        if self._initialized:
            return

        try:
            from transformers import pipeline

            logger.info(
                "EMOTION_MODEL_LOADING",
                extra={"model_name": self.model_name, "device": self.device}
            )

            self._pipeline = pipeline(
                "text-classification",
                model=self.model_name,
                device=-1 if self.device == "cpu" else 0,  # -1 for CPU
                top_k=None,
                truncation=True,
                max_length=self.MAX_LENGTH,
            )

            self._initialized = True
            logger.info("EMOTION_MODEL_LOADED", extra={"model_name": self.model_name})

        except ImportError as e:
            self._init_error = f"transformers not installed: {e}"
            logger.warning("EMOTION_MODEL_IMPORT_ERROR", extra={"error": self._init_error})
            self.enabled = False

        except Exception as e:
            self._init_error = str(e)
            logger.error(
                "EMOTION_MODEL_INIT_ERROR",
                extra={"error": self._init_error, "model_name": self.model_name}
            )
            self.enabled = False

    def assess(self, texts: Iterable[str]) -> SecondaryAssessment:
        """Average the model's emotion distribution over caller utterances.

        Args:
            texts: Caller utterances (empty ones are skipped)

        Returns:
            SecondaryAssessment; the neutral fallback when the model is
            unavailable, fails, or there is no text
        """
        utterances = [t for t in texts if normalize_text(t)]
        if not self.enabled or self._pipeline is None or not utterances:
            return self._fallback_result()

        try:
            totals = {axis: 0.0 for axis in ("anxiety", "agitation", "confusion", "positivity")}
            top_scores = []
            for text in utterances:
                # Rough char limit before tokenization
                scores = self._label_scores(self._pipeline(text[:2000]))
                for label, score in scores.items():
                    axis = LABEL_AXES.get(label)
                    if axis:
                        totals[axis] += score
                top_scores.append(max(scores.values(), default=0.0))

            count = len(utterances)
            result = SecondaryAssessment(
                confidence=sum(top_scores) / count,
                model_name=self.model_name,
                **{axis: min(total / count, 1.0) for axis, total in totals.items()},
            )

            logger.debug(
                "EMOTION_ANALYSIS_COMPLETE",
                extra={"utterance_count": count, "confidence": result.confidence}
            )
            return result

        except Exception as e:
            logger.error("EMOTION_ANALYSIS_ERROR", extra={"error": str(e)})
            return self._fallback_result()

    @staticmethod
    def _label_scores(output) -> Dict[str, float]:
        """Flatten pipeline output to {label: score}.

        A single string input yields a list of dicts, or a list holding one
        list of dicts depending on the transformers version.
        """
        entries: List[dict] = output
        if entries and isinstance(entries[0], list):
            entries = entries[0]
        return {str(e["label"]).lower(): float(e["score"]) for e in entries}

    def _fallback_result(self) -> SecondaryAssessment:
        """Return neutral result when the model is unavailable."""
        return SecondaryAssessment(
            anxiety=0.0,
            agitation=0.0,
            confusion=0.0,
            positivity=0.0,
            confidence=0.5,
            model_name="fallback",
        )

    @property
    def is_available(self) -> bool:
        """Check if the model is available and initialized."""
        return self.enabled and self._initialized and self._pipeline is not None

    def get_status(self) -> dict:
        """Get analyzer status for health checks."""
        return {
            "enabled": self.enabled,
            "initialized": self._initialized,
            "model_name": self.model_name,
            "device": self.device,
            "error": self._init_error,
        }
