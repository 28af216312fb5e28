"""Event samples and their loaders."""

from dataio.dataset import Dataset
from dataio.loaders import load_csv, save_csv
from dataio.validators import ValidationError

__all__ = ["Dataset", "ValidationError", "load_csv", "save_csv"]
