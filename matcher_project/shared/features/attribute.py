"""
Column attributes consumed by feature extractors.
"""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Attribute:
    """
    A column's values as seen by the feature extractors.
    
    Attributes:
        id: Instance identifier (bagged copies of a column get their own)
        name: Column header
        values: Raw cell values, in row order
        column_id: Identifier of the stored column this instance came from
    """
    
    id: str
    name: str
    values: List[str] = field(default_factory=list)
    column_id: Optional[str] = None
    
    def __post_init__(self):
        if self.column_id is None:
            self.column_id = self.id
    
    def __len__(self) -> int:
        return len(self.values)
