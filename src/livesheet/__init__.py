"""livesheet -- live spreadsheet-style evaluator over named formula cells."""

__version__ = "0.1.0"

from livesheet.cell import Cell, CellSeed, CellTarget, CellView
from livesheet.formulas import Formula, compile_formula
from livesheet.scheduler import AsyncioScheduler, Scheduler, VirtualScheduler
from livesheet.scope import Scope, ScopeLens, narrow
from livesheet.sheet import Sheet, SheetError
from livesheet.storage import FileStorage, MemoryStorage, Storage

__all__ = [
    "AsyncioScheduler",
    "Cell",
    "CellSeed",
    "CellTarget",
    "CellView",
    "FileStorage",
    "Formula",
    "MemoryStorage",
    "Scheduler",
    "Scope",
    "ScopeLens",
    "Sheet",
    "SheetError",
    "Storage",
    "VirtualScheduler",
    "__version__",
    "compile_formula",
    "narrow",
]
