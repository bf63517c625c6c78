"""
Models for the merged view of a descriptor set.
"""
from typing import List, Dict
from pydantic import BaseModel
from .service_definition import ComposeService

class TopologyConfig(BaseModel):
    """
    Complete configuration for a layered descriptor set.
    Equivalent to the output of ``docker compose config``.
    """
    descriptor_paths: List[str] = []
    services: Dict[str, ComposeService] = {}
    networks: List[str] = []
    volumes: List[str] = []
