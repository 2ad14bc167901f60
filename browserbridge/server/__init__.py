from browserbridge.server.installer import DependencyInstaller
from browserbridge.server.locator import ProcessLocator
from browserbridge.server.supervisor import ProcessSupervisor

__all__ = ["DependencyInstaller", "ProcessLocator", "ProcessSupervisor"]
