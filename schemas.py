"""
Form schemas for the operations dashboard.

Each model validates one submitted form. Documents are written to Firestore
with camelCase field names, so every model serialises by alias:
``form.to_document()`` gives the dict that goes into the collection.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["Agent", "Admin", "Superadmin"]
AgentType = Literal["Regular", "Elite", "Spammer", "Model", "Team Leader"]
AgentStatus = Literal["Active", "Pending", "Rejected"]
ClientStatus = Literal["In Process", "Active", "Inactive", "Eliminated"]
PaymentMode = Literal["Ewallet/Online Banking", "Crypto"]
OrderStatus = Literal["Pending", "Approved", "Rejected"]
RewardStatus = Literal["Claimed", "Unclaimed"]


class FormModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              str_strip_whitespace=True)

    def to_document(self, **extra):
        doc = self.model_dump(by_alias=True, exclude_none=True)
        doc.update(extra)
        return doc


class LoginForm(FormModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class SignupForm(FormModel):
    """
    Self-service account creation
    Collection name: "agents" (document id = auth uid)
    """
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    agent_type: AgentType


class AgentForm(SignupForm):
    """Account created by an admin on behalf of a new agent."""
    role: Role = "Agent"
    date_hired: Optional[datetime] = None


class AgentStatusForm(FormModel):
    status: Optional[AgentStatus] = None
    role: Optional[Role] = None


class ClientForm(FormModel):
    """
    Shops with a completed KYC
    Collection name: "clients"
    """
    shop_id: str = Field(..., min_length=1)
    client_name: str = Field(..., min_length=2)
    agent: str = Field(..., min_length=1)
    kyc_completed_date: datetime
    status: ClientStatus
    client_details: str = ""


class BulkStatusForm(FormModel):
    ids: list[str] = Field(..., min_length=1)
    status: ClientStatus


class BulkDeleteForm(FormModel):
    ids: list[str] = Field(..., min_length=1)


class ParseDetailsForm(FormModel):
    details: str = Field(..., min_length=1)


class DailyAddedClientForm(FormModel):
    """
    Prospects added from pasted details
    Collection name: "dailyAddedClients"
    """
    name: str = Field(..., min_length=2)
    age: int = Field(..., ge=18)
    location: str = Field(..., min_length=2)
    work: str = Field(..., min_length=2)


class TransactionForm(FormModel):
    """
    Deposits and withdrawals share one shape
    Collection names: "deposits", "withdrawals"
    """
    shop_id: str = Field(..., min_length=1)
    client_name: str = Field(..., min_length=2)
    agent: str = Field(..., min_length=1)
    date: datetime
    amount: float = Field(..., gt=0)
    payment_mode: PaymentMode


class DeviceForm(FormModel):
    """
    Phones handed to agents
    Collection name: "inventory"
    """
    agent: str = ""
    imei: str = Field(..., min_length=15, max_length=17)
    model: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)
    apple_id_username: Optional[str] = None
    apple_id_password: Optional[str] = None
    remarks: Optional[str] = None


class DeviceUpdateForm(FormModel):
    agent: Optional[str] = Field(None, min_length=1)
    imei: Optional[str] = Field(None, min_length=15, max_length=17)
    model: Optional[str] = Field(None, min_length=1)
    color: Optional[str] = Field(None, min_length=1)
    apple_id_username: Optional[str] = None
    apple_id_password: Optional[str] = None
    remarks: Optional[str] = None


class OrderForm(FormModel):
    """
    Order requests raised for a shop
    Collection name: "orders"
    """
    agent: str = Field(..., min_length=1)
    shop_id: str = Field(..., min_length=1)
    location: str = Field(..., min_length=2)
    price: float = Field(..., gt=0)
    remarks: str = ""


class OrderStatusForm(FormModel):
    status: OrderStatus


class AbsenceForm(FormModel):
    date: datetime
    agent: str = Field(..., min_length=1)
    remarks: str = Field(..., min_length=1)


class PenaltyForm(AbsenceForm):
    amount: float = Field(0, ge=0)


class RewardForm(AbsenceForm):
    status: RewardStatus = "Unclaimed"


class ReportClientEntry(FormModel):
    shop_id: str = ""
    client_details: str = ""
    assets: str = ""
    conversation_summary: str = ""
    plan_for_tomorrow: str = ""


class DailyReportForm(FormModel):
    """Client notes for an agent's end-of-day report; never stored."""
    clients: list[ReportClientEntry] = Field(..., min_length=1)


class TeamPerformanceForm(FormModel):
    """Admin override of the computed figures for one agent."""
    added_today: Optional[int] = Field(None, ge=0)
    monthly_added: Optional[int] = Field(None, ge=0)
    open_accounts: Optional[int] = Field(None, ge=0)
    total_deposits: Optional[float] = Field(None, ge=0)
    total_withdrawals: Optional[float] = Field(None, ge=0)

    @field_validator("total_deposits", "total_withdrawals")
    @classmethod
    def _round_money(cls, value):
        return None if value is None else round(value, 2)
