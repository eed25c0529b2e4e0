from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_WHY_IT_MATTERS = "This mission helps you progress towards your financial goals."
DEFAULT_TIPS = ["Complete this mission to earn XP"]


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"
    saving = "saving"
    investment = "investment"


def _validate_email(value: str) -> str:
    v = value.strip().lower()
    if not v:
        raise ValueError("email is required")
    return v


def level_for(xp: float) -> int:
    return int(xp // 100)


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: str
    timestamp: str


class SignupRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)
    name: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)


class UserRecord(BaseModel):
    """Profile stored under ``user:<email>``; keys this model does not know are kept."""

    model_config = ConfigDict(extra="allow")

    email: str
    name: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    passwordHash: Optional[str] = None
    isOnboarded: bool = False
    xpLevel: int = 0
    streak: int = 0
    currentSavings: float = 0
    currentNetWorth: float = 0
    monthlyIncome: Optional[float] = None
    targetAge: Optional[int] = None
    age: Optional[int] = None
    savingsRate: Optional[float] = None
    roleModel: Optional[str] = None
    interests: list[str] = Field(default_factory=list)
    friends: list[str] = Field(default_factory=list)
    lastMissionDate: Optional[str] = None

    def public(self) -> dict[str, Any]:
        return self.model_dump(exclude={"passwordHash"}, exclude_none=True)


class UserProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0)
    targetAge: Optional[int] = Field(default=None, ge=0)
    monthlyIncome: Optional[float] = Field(default=None, ge=0)
    currentSavings: Optional[float] = None
    currentNetWorth: Optional[float] = None
    xpLevel: Optional[int] = None
    streak: Optional[int] = Field(default=None, ge=0)
    savingsRate: Optional[float] = None
    isOnboarded: Optional[bool] = None
    roleModel: Optional[str] = None
    interests: Optional[list[str]] = None

    @field_validator("isOnboarded", "xpLevel", "streak", "currentSavings", "currentNetWorth", "interests", mode="before")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value


class Mission(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: str = "Mission"
    description: str = ""
    icon: str = "🎯"
    xp: int = 20
    category: str = "LEARN"
    timeEstimate: str = "10_MIN"
    priority: str = "MEDIUM"
    classification: str = "BETA"
    whyItMatters: str = DEFAULT_WHY_IT_MATTERS
    tips: list[str] = Field(default_factory=lambda: list(DEFAULT_TIPS))
    completed: bool = False
    completedAt: Optional[str] = None


class MissionsState(BaseModel):
    missions: list[Mission] = Field(default_factory=list)
    completedToday: int = 0
    lastReset: str

    def to_json(self) -> dict[str, Any]:
        """Missions keep only the fields they were created with or had set."""
        return {
            "missions": [m.model_dump(mode="json", exclude_unset=True) for m in self.missions],
            "completedToday": self.completedToday,
            "lastReset": self.lastReset,
        }


class MissionsSaveRequest(BaseModel):
    missions: Optional[list[Mission]] = None


class MissionCompleteRequest(BaseModel):
    missionId: str = Field(min_length=1)
    xpEarned: int


class TransactionCreate(BaseModel):
    type: str
    amount: float
    description: Optional[str] = None
    category: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, value: Any) -> str:
        if not isinstance(value, str) or value not in {t.value for t in TransactionType}:
            raise ValueError("Invalid transaction type. Must be: income, expense, saving, or investment")
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError("Invalid amount. Must be a positive number")
        return float(value)


class Transaction(BaseModel):
    id: str
    type: TransactionType
    amount: float
    description: str = ""
    category: str = ""
    date: str


class TransactionResult(BaseModel):
    transaction: Transaction
    newSavings: float
    newNetWorth: float


class PostCreate(BaseModel):
    content: str
    type: Optional[str] = None

    @field_validator("content", mode="before")
    @classmethod
    def validate_content(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Content is required")
        return value.strip()


class Post(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    userId: str
    userName: str
    content: str
    type: str = "achievement"
    likes: int = 0
    comments: int = 0
    createdAt: Optional[str] = None


class FriendAddRequest(BaseModel):
    friendEmail: str

    @field_validator("friendEmail")
    @classmethod
    def validate_friend_email(cls, value: str) -> str:
        return _validate_email(value)


class FriendView(BaseModel):
    name: Optional[str] = None
    email: str
    xp: int
    level: int
    streak: Optional[int] = None


class UserSearchResult(BaseModel):
    name: str
    email: str
    xp: int
    level: int


class LeaderboardEntry(BaseModel):
    name: str
    email: str
    xp: int
    level: int
    streak: int
    rank: int
    isCurrentUser: bool
