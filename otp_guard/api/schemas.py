"""
API Schemas
===========
Request and response bodies for the OTP endpoints.
"""

from pydantic import BaseModel


class OTPRequest(BaseModel):
    email: str


class OTPVerifyRequest(BaseModel):
    email: str
    otp: str


class OTPRequestResponse(BaseModel):
    message: str = "OTP sent successfully."


class OTPVerifyResponse(BaseModel):
    verified: bool = True
    email: str
