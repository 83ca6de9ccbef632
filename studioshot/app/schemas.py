"""Pydantic wire shapes exchanged with the effect service and callers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import ImageStatus, JobState, PipelineStage
from .models import ImageDescriptor, ShadowParams


class WireModel(BaseModel):
    """Base for camelCase wire models that also accept field names."""
    model_config = ConfigDict(populate_by_name=True)


class JobStatusResponse(WireModel):
    """Answer of the effect service to a status query."""
    status: JobState
    result_ref: str | None = Field(None, alias="resultRef")
    error_message: str | None = Field(None, alias="errorMessage")


class SubmitResponse(WireModel):
    """Answer of the effect service to a submission."""
    job_id: str = Field(..., alias="jobId", min_length=1)


class ShadowParameters(WireModel):
    """Drop-shadow options shared by every image of a submission."""
    azimuth: float = Field(0, ge=0, le=360)
    elevation: float = Field(90, ge=0, le=90)
    spread: float = Field(5, ge=0)
    opacity: float = Field(75, ge=0, le=100)

    @classmethod
    def from_params(cls, params: ShadowParams) -> ShadowParameters:
        return cls(**params.as_dict())


class BatchSubmissionItem(WireModel):
    """One image of a batch submission, by reference or inline."""
    name: str
    image_ref: str | None = Field(None, alias="imageRef")
    inline_data: str | None = Field(None, alias="inlineData")

    @model_validator(mode="after")
    def _require_payload(self) -> BatchSubmissionItem:
        if not self.image_ref and not self.inline_data:
            raise ValueError(f"Image '{self.name}' needs imageRef or inlineData")
        return self

    @classmethod
    def from_descriptor(cls, descriptor: ImageDescriptor) -> BatchSubmissionItem:
        return cls(
            name=descriptor.name,
            image_ref=descriptor.reference,
            inline_data=None if descriptor.reference else descriptor.inline_data,
        )


class BatchSubmission(WireModel):
    """A batch of images submitted with shared shadow parameters."""
    images: list[BatchSubmissionItem] = Field(default_factory=list)
    shadow: ShadowParameters = Field(default_factory=ShadowParameters)


class ImageProgress(WireModel):
    """Per-image row of a pipeline snapshot."""
    name: str
    status: ImageStatus = ImageStatus.PENDING
    job_id: str | None = Field(None, alias="jobId")
    reconnecting: bool = False
    error: str | None = None


class PipelineSnapshot(WireModel):
    """Serializable view of a pipeline run."""
    stage: PipelineStage = PipelineStage.IDLE
    total: int = 0
    completed: int = 0
    failed: int = 0
    active: int = 0
    progress: float = Field(0.0, ge=0.0, le=1.0)
    eta_seconds: float | None = Field(None, alias="etaSeconds")
    warnings: list[str] = Field(default_factory=list)
    images: list[ImageProgress] = Field(default_factory=list)
