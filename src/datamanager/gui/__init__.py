"""NiceGUI front end and orchestration of the datamanager engine."""

from datamanager.gui.app_config import DMConfig
from datamanager.gui.data_manager import DataManager, LifecycleState

__all__ = ["DMConfig", "DataManager", "LifecycleState"]
