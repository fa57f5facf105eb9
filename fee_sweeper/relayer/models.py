"""Pydantic models for relayer API request and response bodies."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Keychain(BaseModel):
    """Wallet keychain as produced by key derivation.

    ``private_keys`` holds hex secrets keyed by name; ``sk_root`` is the
    root signing key used to authenticate relayer requests.
    """

    model_config = ConfigDict(extra="allow")

    public_keys: dict[str, Any] = Field(default_factory=dict)
    private_keys: dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def root_key(self) -> str | None:
        value = self.private_keys.get("sk_root")
        return str(value) if value is not None else None


class Wallet(BaseModel):
    """A relayer wallet. Only the id is interpreted client-side."""

    model_config = ConfigDict(extra="allow")

    id: str


class TaskResponse(BaseModel):
    """Any response that hands back an asynchronous task."""

    model_config = ConfigDict(extra="allow")

    task_id: str


class GetWalletResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    wallet: Wallet


class FindWalletRequest(BaseModel):
    wallet_id: str
    secret_share_seed: str
    blinder_seed: str
    key_chain: dict[str, Any]


class CreateWalletRequest(BaseModel):
    wallet: dict[str, Any]


class NoteBody(BaseModel):
    """Plaintext note fields the relayer needs to redeem a note."""

    mint: str
    amount: str
    receiver: str
    blinder: str


class RedeemNoteRequest(BaseModel):
    note: NoteBody
    decryption_key: str = Field(repr=False)


class TaskStatus(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    state: str | None = None
    description: str | None = None


class TaskStatusResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: TaskStatus | None = None


class PriceReportRequest(BaseModel):
    base_token: dict[str, str]
    quote_token: dict[str, str]


class PriceReportResponse(BaseModel):
    """Price report; ``price_report`` is ``{"Nominal": {...}}`` when healthy."""

    model_config = ConfigDict(extra="allow")

    price_report: dict[str, Any] | str


__all__ = [
    "CreateWalletRequest",
    "FindWalletRequest",
    "GetWalletResponse",
    "Keychain",
    "NoteBody",
    "PriceReportRequest",
    "PriceReportResponse",
    "RedeemNoteRequest",
    "TaskResponse",
    "TaskStatus",
    "TaskStatusResponse",
    "Wallet",
]
