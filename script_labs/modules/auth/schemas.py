from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError

from script_labs.core.validation import field_error

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128


class AuthCredentials(BaseModel):
    email: str
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise field_error("string_email", "Please provide a valid email address")
        try:
            _, email = validate_email(value.strip())
        except PydanticCustomError:
            raise field_error("string_email", "Please provide a valid email address")
        return email

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise field_error("string_type", "Password must be a string")
        if len(value) < PASSWORD_MIN_LENGTH:
            raise field_error("string_min", f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
        if len(value) > PASSWORD_MAX_LENGTH:
            raise field_error("string_max", f"Password cannot exceed {PASSWORD_MAX_LENGTH} characters")
        return value


class UserInfo(BaseModel):
    id: Optional[Union[str, int]] = None
    email: Optional[str] = None


class RegisterData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: UserInfo
    requires_confirmation: bool = Field(alias="requiresConfirmation")


class RegisterResponse(BaseModel):
    success: bool
    message: str
    data: RegisterData
    timestamp: str


class LoginData(BaseModel):
    token: str
    user: UserInfo


class LoginResponse(BaseModel):
    success: bool
    message: str
    data: LoginData
    timestamp: str


class LogoutData(BaseModel):
    note: str


class LogoutResponse(BaseModel):
    success: bool
    message: str
    data: LogoutData
    timestamp: str


class MeData(BaseModel):
    user_id: Union[str, int]
    email: str
    authenticated: bool


class MeResponse(BaseModel):
    success: bool
    data: MeData
    timestamp: str


class VerifyTokenData(BaseModel):
    valid: bool
    user_id: Union[str, int]
    expires_at: Union[int, str]


class VerifyTokenResponse(BaseModel):
    success: bool
    message: str
    data: VerifyTokenData
    timestamp: str
