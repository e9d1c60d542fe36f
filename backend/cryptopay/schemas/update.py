import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError


class UpdateType(str, enum.Enum):
    INVOICE_PAID = "invoice_paid"


class InvoiceStatus(str, enum.Enum):
    ACTIVE = "active"
    PAID = "paid"
    EXPIRED = "expired"


class Asset(str, enum.Enum):
    BTC = "BTC"
    TON = "TON"
    ETH = "ETH"  # testnet only
    USDT = "USDT"
    USDC = "USDC"
    BUSD = "BUSD"


class PaidButton(str, enum.Enum):
    VIEW_ITEM = "viewItem"
    OPEN_CHANNEL = "openChannel"
    OPEN_BOT = "openBot"
    CALLBACK = "callback"


def type_key(update_type: "UpdateType | str") -> str:
    return str(getattr(update_type, "value", update_type))


class Invoice(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    invoice_id: StrictInt
    status: str = Field(..., description="One of InvoiceStatus, kept open")
    asset: str = Field(..., description="Currency code, see Asset")
    amount: str
    hash: str = ""
    pay_url: str = ""
    description: str = ""
    created_at: datetime | None = None
    expiration_date: datetime | None = None
    paid_at: datetime | None = None
    allow_comments: bool = False
    allow_anonymous: bool = False
    paid_anonymously: bool = False
    comment: str = ""
    hidden_message: str = ""
    payload: str = ""
    paid_btn_name: str = ""
    paid_btn_url: str = ""


class Update(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(..., alias="update_id", description="Non-unique update ID")
    update_type: str
    request_date: datetime
    payload: Any = Field(..., description="Invoice for invoice_paid, dict otherwise")


class _Envelope(BaseModel, extra="ignore"):
    update_id: StrictInt
    update_type: str
    request_date: datetime
    payload: dict[str, Any]


# update type -> payload model; unknown types keep the raw dict
PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    UpdateType.INVOICE_PAID.value: Invoice,
}


def register_payload_model(update_type: UpdateType | str, model: type[BaseModel]) -> None:
    PAYLOAD_MODELS[type_key(update_type)] = model


class UpdateDecodeError(ValueError):
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


def _as_decode_error(exc: ValidationError, prefix: tuple = ()) -> UpdateDecodeError:
    err = exc.errors(include_url=False)[0]
    loc = prefix + tuple(err["loc"])
    field = ".".join(str(part) for part in loc) or None
    if err["type"] == "missing":
        message = f"cannot decode update: missing field '{field}'"
    elif field is None:
        message = f"cannot decode update: {err['msg']}"
    else:
        message = f"cannot decode update: invalid field '{field}': {err['msg']}"
    return UpdateDecodeError(message, field=field)


def decode_update(raw_body: bytes) -> Update:
    """
    Parse a verified webhook body into an Update.

    Raises UpdateDecodeError naming the missing or malformed field.
    """
    try:
        envelope = _Envelope.model_validate_json(raw_body)
    except ValidationError as ve:
        raise _as_decode_error(ve) from ve

    payload: Any = envelope.payload
    model = PAYLOAD_MODELS.get(envelope.update_type)
    if model is not None:
        try:
            payload = model.model_validate(envelope.payload)
        except ValidationError as ve:
            raise _as_decode_error(ve, prefix=("payload",)) from ve

    return Update(
        update_id=envelope.update_id,
        update_type=envelope.update_type,
        request_date=envelope.request_date,
        payload=payload,
    )
