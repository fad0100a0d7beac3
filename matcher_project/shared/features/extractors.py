"""
Feature extractors for column attributes.

Two kinds exist: single extractors produce one named value, group
extractors produce a fixed, ordered list of named values. Both expose
``extract(attribute) -> List[float]`` so callers never branch on kind.
Extractors must return their declared number of values for any input,
falling back to 0.0 (or the documented default) when a value cannot
be computed.
"""
import math
import re
import string
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .attribute import Attribute

MISSING_TOKENS = frozenset(['', 'null', 'na', 'n/a', 'nan', 'none'])
CURRENCY_SYMBOLS = frozenset('$€£¥')
CHAR_DIST_ALPHABET = string.printable[:94]
DATA_TYPES = ['integer', 'float', 'boolean', 'date', 'string']

_RANGE_RE = re.compile(r'^\s*-?\d+(\.\d+)?\s*(-|to)\s*-?\d+(\.\d+)?\s*$')
_DATE_RE = re.compile(
    r'^\s*(\d{4}[-/.]\d{1,2}[-/.]\d{1,2}|\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4})'
    r'([ T]\d{1,2}:\d{2}(:\d{2})?)?\s*$'
)


def is_missing(value: Optional[str]) -> bool:
    return value is None or value.strip().lower() in MISSING_TOKENS


def _present(attribute: Attribute) -> List[str]:
    return [v for v in attribute.values if not is_missing(v)]


def _to_float(value: str) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _entropy(counts: Iterable[int]) -> float:
    counts = [c for c in counts if c > 0]
    total = sum(counts)
    if total == 0:
        return 0.0
    probs = np.asarray(counts, dtype=float) / total
    return float(-(probs * np.log2(probs)).sum())


def _char_ratio(attribute: Attribute, predicate: Callable[[str], bool]) -> float:
    text = ''.join(_present(attribute))
    if not text:
        return 0.0
    return sum(1 for ch in text if predicate(ch)) / len(text)


def _entry_ratio(attribute: Attribute, predicate: Callable[[str], bool]) -> float:
    present = _present(attribute)
    if not present:
        return 0.0
    return sum(1 for v in present if predicate(v)) / len(present)


def _mean_count(attribute: Attribute, token: str) -> float:
    present = _present(attribute)
    if not present:
        return 0.0
    return sum(v.count(token) for v in present) / len(present)


def infer_value_type(value: str) -> str:
    """Classify a single cell as one of ``DATA_TYPES``."""
    stripped = value.strip()
    if stripped.lower() in ('true', 'false'):
        return 'boolean'
    try:
        int(stripped)
        return 'integer'
    except ValueError:
        pass
    if _to_float(stripped) is not None:
        return 'float'
    if _DATE_RE.match(stripped):
        return 'date'
    return 'string'


def infer_column_type(attribute: Attribute) -> str:
    """Most common cell type of the non-missing values; ``string`` when empty."""
    present = _present(attribute)
    if not present:
        return 'string'
    counts = Counter(infer_value_type(v) for v in present)
    # ties resolve in DATA_TYPES order
    return max(DATA_TYPES, key=lambda t: (counts.get(t, 0), -DATA_TYPES.index(t)))


# single features

def num_unique_vals(attribute: Attribute) -> float:
    return float(len(set(_present(attribute))))


def prop_unique_vals(attribute: Attribute) -> float:
    present = _present(attribute)
    return len(set(present)) / len(present) if present else 0.0


def prop_missing_vals(attribute: Attribute) -> float:
    if not attribute.values:
        return 0.0
    return sum(1 for v in attribute.values if is_missing(v)) / len(attribute.values)


def ratio_alpha_chars(attribute: Attribute) -> float:
    return _char_ratio(attribute, str.isalpha)


def prop_numerical_chars(attribute: Attribute) -> float:
    return _char_ratio(attribute, str.isdigit)


def prop_whitespace_chars(attribute: Attribute) -> float:
    return _char_ratio(attribute, str.isspace)


def prop_entries_with_at_sign(attribute: Attribute) -> float:
    return _entry_ratio(attribute, lambda v: '@' in v)


def prop_entries_with_hyphen(attribute: Attribute) -> float:
    return _entry_ratio(attribute, lambda v: '-' in v)


def prop_entries_with_paren(attribute: Attribute) -> float:
    return _entry_ratio(attribute, lambda v: '(' in v or ')' in v)


def prop_entries_with_currency_symbol(attribute: Attribute) -> float:
    return _entry_ratio(attribute, lambda v: any(ch in CURRENCY_SYMBOLS for ch in v))


def mean_commas_per_entry(attribute: Attribute) -> float:
    return _mean_count(attribute, ',')


def mean_forward_slashes_per_entry(attribute: Attribute) -> float:
    return _mean_count(attribute, '/')


def prop_range_format(attribute: Attribute) -> float:
    return _entry_ratio(attribute, lambda v: bool(_RANGE_RE.match(v)))


def is_discrete(attribute: Attribute) -> float:
    column_type = infer_column_type(attribute)
    if column_type in ('integer', 'boolean'):
        return 1.0
    if column_type == 'string':
        return 1.0 if prop_unique_vals(attribute) <= 0.5 else 0.0
    return 0.0


def entropy_for_discrete_values(attribute: Attribute) -> float:
    if not is_discrete(attribute):
        return 0.0
    return _entropy(Counter(_present(attribute)).values())


def shannon_entropy(attribute: Attribute) -> float:
    return _entropy(Counter(''.join(_present(attribute))).values())


# group features

def _summary(values: Sequence[float]) -> List[float]:
    if len(values) == 0:
        return [0.0] * 5
    arr = np.asarray(values, dtype=float)
    mode = Counter(values).most_common(1)[0][0]
    return [float(arr.mean()), float(np.median(arr)), float(mode), float(arr.min()), float(arr.max())]


def inferred_data_type(attribute: Attribute) -> List[float]:
    column_type = infer_column_type(attribute)
    return [1.0 if t == column_type else 0.0 for t in DATA_TYPES]


def stats_of_text_length(attribute: Attribute) -> List[float]:
    return _summary([len(v) for v in _present(attribute)])


def stats_of_numerical_type(attribute: Attribute) -> List[float]:
    numbers = [n for n in (_to_float(v) for v in _present(attribute)) if n is not None]
    return _summary(numbers)


def char_dist_features(attribute: Attribute) -> List[float]:
    text = ''.join(_present(attribute))
    if not text:
        return [0.0] * len(CHAR_DIST_ALPHABET)
    counts = Counter(text)
    return [counts.get(ch, 0) / len(text) for ch in CHAR_DIST_ALPHABET]


def _stat_names(prefix: str) -> List[str]:
    return [f"{prefix}-{stat}" for stat in ('mean', 'median', 'mode', 'min', 'max')]


class FeatureExtractor:
    """Base class for feature extractors."""
    
    kind: str = ''
    
    def __init__(self, name: str):
        self.name = name
    
    def feature_names(self) -> List[str]:
        raise NotImplementedError
    
    def extract(self, attribute: Attribute) -> List[float]:
        raise NotImplementedError
    
    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class SingleFeatureExtractor(FeatureExtractor):
    """Extractor producing exactly one value."""
    
    kind = 'single'
    
    def __init__(self, name: str, func: Callable[[Attribute], float]):
        super().__init__(name)
        self.func = func
    
    def feature_names(self) -> List[str]:
        return [self.name]
    
    def extract(self, attribute: Attribute) -> List[float]:
        return [float(self.func(attribute))]


class GroupFeatureExtractor(FeatureExtractor):
    """Extractor producing a fixed list of values, one per feature name."""
    
    kind = 'group'
    
    def __init__(
        self,
        name: str,
        names: Sequence[str],
        func: Optional[Callable[[Attribute], List[float]]] = None
    ):
        super().__init__(name)
        self._names = list(names)
        self.func = func
    
    def feature_names(self) -> List[str]:
        return list(self._names)
    
    def extract(self, attribute: Attribute) -> List[float]:
        return [float(v) for v in self.func(attribute)]


def normalise_header(name: str) -> str:
    return re.sub(r'[^a-z0-9]+', ' ', (name or '').lower()).strip()


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def normalised_edit_distance(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    return edit_distance(a, b) / longest if longest else 0.0


class ClassExampleFeatureExtractor(GroupFeatureExtractor):
    """
    Group extractor comparing a column header with labelled training headers.
    
    One value per class. The examples are captured when the extractor
    is built for training and travel with the trained artifact. A column
    is never compared with itself.
    """
    
    def __init__(self, name: str, classes: Sequence[str], examples: Sequence[Tuple[str, str, str]]):
        """
        Args:
            name: Feature group name
            classes: Canonical class list
            examples: ``(column_id, normalised header, class)`` triples
        """
        super().__init__(name, [f"{name}-{cls}" for cls in classes])
        self.classes = list(classes)
        self.examples = list(examples)
    
    def _candidates(self, attribute: Attribute) -> List[Tuple[float, str]]:
        header = normalise_header(attribute.name)
        return [
            (normalised_edit_distance(header, example), cls)
            for column_id, example, cls in self.examples
            if column_id != attribute.column_id
        ]


class MinEditDistanceFeatureExtractor(ClassExampleFeatureExtractor):
    """Minimum normalised edit distance to each class's example headers (1.0 without examples)."""
    
    def __init__(self, classes, examples, max_comparisons_per_class: int = 20):
        super().__init__('min-editdistance-from-class-examples', classes, examples)
        self.max_comparisons_per_class = max_comparisons_per_class
    
    def extract(self, attribute: Attribute) -> List[float]:
        best: Dict[str, float] = {}
        seen: Counter = Counter()
        for distance, cls in self._candidates(attribute):
            if seen[cls] >= self.max_comparisons_per_class:
                continue
            seen[cls] += 1
            best[cls] = min(best.get(cls, 1.0), distance)
        return [best.get(cls, 1.0) for cls in self.classes]


class KnnHeaderFeatureExtractor(ClassExampleFeatureExtractor):
    """Share of each class among the k header-nearest labelled columns."""
    
    def __init__(self, classes, examples, num_neighbours: int = 3):
        super().__init__('prop-instances-per-class-in-knearestneighbours', classes, examples)
        self.num_neighbours = num_neighbours
    
    def extract(self, attribute: Attribute) -> List[float]:
        neighbours = sorted(self._candidates(attribute), key=lambda pair: pair[0])[:self.num_neighbours]
        if not neighbours:
            return [0.0] * len(self.classes)
        counts = Counter(cls for _, cls in neighbours)
        return [counts.get(cls, 0) / len(neighbours) for cls in self.classes]


SINGLE_FEATURES: Dict[str, Callable[[Attribute], float]] = {
    'num-unique-vals': num_unique_vals,
    'prop-unique-vals': prop_unique_vals,
    'prop-missing-vals': prop_missing_vals,
    'ratio-alpha-chars': ratio_alpha_chars,
    'prop-numerical-chars': prop_numerical_chars,
    'prop-whitespace-chars': prop_whitespace_chars,
    'prop-entries-with-at-sign': prop_entries_with_at_sign,
    'prop-entries-with-hyphen': prop_entries_with_hyphen,
    'prop-entries-with-paren': prop_entries_with_paren,
    'prop-entries-with-currency-symbol': prop_entries_with_currency_symbol,
    'mean-commas-per-entry': mean_commas_per_entry,
    'mean-forward-slashes-per-entry': mean_forward_slashes_per_entry,
    'prop-range-format': prop_range_format,
    'is-discrete': is_discrete,
    'entropy-for-discrete-values': entropy_for_discrete_values,
    'shannon-entropy': shannon_entropy,
}

GROUP_FEATURES: Dict[str, Tuple[List[str], Callable[[Attribute], List[float]]]] = {
    'inferred-data-type': ([f"inferred-type-is-{t}" for t in DATA_TYPES], inferred_data_type),
    'stats-of-text-length': (_stat_names('text-length'), stats_of_text_length),
    'stats-of-numerical-type': (_stat_names('numeric'), stats_of_numerical_type),
    'char-dist-features': ([f"char-dist-{ord(ch)}" for ch in CHAR_DIST_ALPHABET], char_dist_features),
}

CLASS_EXAMPLE_GROUPS = {
    'min-editdistance-from-class-examples': MinEditDistanceFeatureExtractor,
    'prop-instances-per-class-in-knearestneighbours': KnnHeaderFeatureExtractor,
}
