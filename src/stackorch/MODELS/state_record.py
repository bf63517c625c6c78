"""
Model for the persisted state of a topology invocation.
"""
from typing import Dict, List
from pydantic import BaseModel


class StateRecord(BaseModel):
    """
    What composition, with what environment, was last successfully applied
    for one invocation identity.
    """
    identity: str
    descriptor_paths: List[str] = []
    environment: Dict[str, str] = {}
