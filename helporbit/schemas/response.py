"""
Shared response envelopes
"""
from typing import Dict, List, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every failed request"""
    success: bool = False
    error: str
    code: str
    errors: Optional[Dict[str, List[str]]] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str
