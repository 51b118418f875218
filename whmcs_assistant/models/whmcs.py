from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional


class WhmcsRecord(BaseModel):
    """WHMCS sends most numbers as strings and omits fields freely."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Client(WhmcsRecord):
    id: int
    firstname: str = ""
    lastname: str = ""
    fullname: str = ""
    companyname: str = ""
    email: str = ""
    phonenumber: str = ""
    status: str = ""

    @model_validator(mode="before")
    @classmethod
    def _accept_client_details_shape(cls, data):
        # GetClientsDetails reports the id as "userid" or "client_id"
        if isinstance(data, dict) and "id" not in data:
            for alias in ("userid", "client_id"):
                if alias in data:
                    data = {**data, "id": data[alias]}
                    break
        return data

    @model_validator(mode="after")
    def _fill_fullname(self):
        if not self.fullname:
            self.fullname = f"{self.firstname} {self.lastname}".strip() or self.companyname
        return self


class Invoice(WhmcsRecord):
    id: int
    number: str = ""
    userid: Optional[int] = None
    date: str = ""
    duedate: str = ""
    datepaid: str = ""
    total: str = "0.00"
    balance: str = ""
    status: str = ""
    paymentmethod: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_number(cls, data):
        if isinstance(data, dict) and not data.get("number") and data.get("id") is not None:
            data = {**data, "number": str(data["id"])}
        return data

    @field_validator("total", mode="before")
    @classmethod
    def _total_as_str(cls, value):
        return "0.00" if value in (None, "") else str(value)


class Service(WhmcsRecord):
    id: int
    clientid: Optional[int] = None
    pid: Optional[int] = None
    name: str = ""
    translated_name: str = ""
    groupname: str = ""
    domain: str = ""
    status: str = ""
    regdate: str = ""
    nextduedate: str = ""
    billingcycle: str = ""
    recurringamount: str = ""
    username: str = ""
    serverhostname: str = ""
    serverip: str = ""
    disk_usage: Optional[float] = Field(default=None, alias="diskusage")
    disk_limit: Optional[float] = Field(default=None, alias="disklimit")
    bw_usage: Optional[float] = Field(default=None, alias="bwusage")
    bw_limit: Optional[float] = Field(default=None, alias="bwlimit")

    @field_validator("recurringamount", mode="before")
    @classmethod
    def _amount_as_str(cls, value):
        return "" if value is None else str(value)

    @field_validator("disk_usage", "disk_limit", "bw_usage", "bw_limit", mode="before")
    @classmethod
    def _blank_as_none(cls, value):
        return None if value in ("", None) else value

    @property
    def display_name(self) -> str:
        return self.name or self.translated_name or "Serviço"


class TicketResult(BaseModel):
    success: bool
    message: str
    ticket_id: Optional[int] = None
    tid: Optional[str] = None
