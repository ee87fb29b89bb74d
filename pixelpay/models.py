"""
PixelPay Core Data Models
Shared models for database operations and API
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class RewardStatus(str, Enum):
    """Outcome of a reward distribution attempt"""
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class LogType(str, Enum):
    """Audit log entry types"""
    SYSTEM = "system"
    GENERATE = "generate"
    PAYMENT = "payment"
    SALE = "sale"
    NFT_MINT = "nft-mint"
    NFT_ERROR = "nft-error"
    TOKEN_REWARD = "token-reward"
    TOKEN_SKIP = "token-skip"
    TOKEN_ERROR = "token-error"
    PIPELINE = "pipeline"
    PURCHASE = "purchase"
    ERROR = "error"


class Resource(BaseModel):
    """A sellable item in the catalog (an AI-generated image)"""
    id: str = Field(default_factory=_new_id)
    prompt: str = Field(description="Description of the resource")
    image_url: str = Field(description="Locator of the resource")
    mime_type: str = Field(default="image/png")
    price: str = Field(default="0.01", description="Price in USD")
    sold: bool = False
    sold_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Purchase(BaseModel):
    """A resource bought by the buyer agent"""
    id: Optional[int] = None
    resource_id: str
    prompt: Optional[str] = None
    price: str = "0.01"
    bought_at: datetime = Field(default_factory=datetime.utcnow)
    artifact_path: Optional[str] = None


class ProvenanceRecord(BaseModel):
    """Ownership token minted to a buyer"""
    token_id: int
    resource_id: str
    owner: str
    tx_hash: Optional[str] = None
    metadata_uri: Optional[str] = None
    minted_at: datetime = Field(default_factory=datetime.utcnow)


class RewardDistribution(BaseModel):
    """Reward token transfer attempted after a sale"""
    id: Optional[int] = None
    buyer_address: str
    resource_id: str
    amount: str = "0"
    tx_hash: Optional[str] = None
    status: RewardStatus = RewardStatus.SUCCESS
    created_at: datetime = Field(default_factory=datetime.utcnow)


class LogEntry(BaseModel):
    """Append-only audit trail entry"""
    id: Optional[int] = None
    type: str
    message: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
