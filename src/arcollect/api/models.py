"""Request models for the function endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class PersonaCommandRequest(BaseModel):
    """Body of ``process-persona-command``.

    Attributes:
        command: Free-text instruction, e.g. "Have Katy send an SMS for #1042".
        context_invoice_id: Invoice number selected in the UI, used when the
            command does not name one.
        context_type: Where the command was issued from; stored on the log.
        tone_intensity: 1 (softest) to 5 (firmest); 3 leaves the persona as is.
    """

    model_config = ConfigDict(populate_by_name=True)

    command: str = Field(..., min_length=1)
    context_invoice_id: str | None = Field(default=None, alias="contextInvoiceId")
    context_type: str | None = Field(default=None, alias="contextType")
    tone_intensity: int = Field(default=3, ge=1, le=5, alias="toneIntensity")


class DigestRunRequest(BaseModel):
    """Body of ``daily-digest-runner``; every field is optional."""

    model_config = ConfigDict(populate_by_name=True)

    force: bool = False
    user_id: str | None = Field(default=None, alias="userId")
    skip_email: bool = Field(default=False, alias="skipEmail")


class PaymentScoreRequest(BaseModel):
    debtor_id: str | None = None
    recalculate_all: bool = False
