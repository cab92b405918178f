import uuid
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Literal, Optional


class VendorWebhookPayload(BaseModel):
    request_id: str = Field(..., min_length=1, description="Job request id (uuid4) the vendor was given")
    status: Literal["success", "error"] = Field(..., description="Final vendor outcome")
    data: Optional[Any] = Field(None, description="Result on success, {'error': ...} on failure")
    error: Optional[str] = Field(None, description="Failure message some vendors send top-level")

    # vendors may add their own fields
    model_config = ConfigDict(extra="allow")

    @field_validator("request_id")
    @classmethod
    def _request_id_is_uuid(cls, v: str) -> str:
        # job ids are always issued as uuid4 strings
        uuid.UUID(v)
        return v

    def failure_message(self) -> Optional[str]:
        if isinstance(self.data, dict) and self.data.get("error"):
            return str(self.data["error"])
        return self.error
