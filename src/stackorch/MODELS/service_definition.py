"""
Models for defining services: entries of a compose descriptor and standalone
containers started outside of any descriptor.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel


class ComposeService(BaseModel):
    """
    A single service as declared in one or more layered compose descriptors.
    """
    name: str
    image_name: str = ""
    build_context: Optional[str] = None

    # Execution
    cmd: List[str] = []
    entrypoint: List[str] = []

    # Environment
    environment: Dict[str, str] = {}
    environment_files: List[str] = []

    # Networking
    ports: List[str] = []
    networks: List[str] = []

    # Lifecycle
    depends_on: List[str] = []
    restart: str = "no"

    labels: Dict[str, str] = {}


class ExposedPort(BaseModel):
    """
    How a standalone service publishes one of its ports on the host.
    """
    container_port: str
    host_port: str = ""
    address: str = "0.0.0.0"
    protocol: str = "tcp"

    def to_string(self) -> str:
        """
        Renders the port in ``address:host:container/protocol`` form, as
        accepted by ``docker run -p``.
        """
        return f"{self.address}:{self.host_port}:{self.container_port}/{self.protocol}"


class RunningContainer(BaseModel):
    """
    Handle on a container started for a ServiceDescriptor.
    """
    container_id: str
    image: str


class ServiceDescriptor(BaseModel):
    """
    A single runnable service: an image plus the ports it exposes.

    The descriptor owns at most one running container at a time, stored in
    ``running``.
    """
    image_tag: str
    exposed_ports: List[ExposedPort] = []
    # Daemon indicates the container is left running in the background
    daemon: bool = False
    running: Optional[RunningContainer] = None

    def expose_ports(self) -> List[str]:
        return [p.to_string() for p in self.exposed_ports]

    def as_daemon(self) -> "ServiceDescriptor":
        """Marks this service to be run as a daemon."""
        self.daemon = True
        return self
