import json
import math
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd


class NpEncoder(json.JSONEncoder):
    """
    JSON encoder for NumPy and pandas values found in analysis summaries.

    Missing and non-finite floats are written as ``null`` so that the output is
    valid JSON.

    Examples:
        >>> import json
        >>> import numpy as np
        >>> from components.np_encoder import NpEncoder
        >>>
        >>> json.dumps({"p_value": np.float64(0.01), "n": np.int64(3)}, cls=NpEncoder)
        '{"p_value": 0.01, "n": 3}'
    """

    def encode(self, obj: Any) -> str:
        return super().encode(self._clean(obj))

    def iterencode(self, obj: Any, _one_shot: bool = False):
        return super().iterencode(self._clean(obj), _one_shot)

    def _clean(self, obj: Any) -> Any:
        """Recursively replace non-finite floats by None."""
        if isinstance(obj, dict):
            return {k: self._clean(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [self._clean(v) for v in obj]
        if isinstance(obj, (float, np.floating)) and not math.isfinite(obj):
            return None
        return obj

    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.ndarray):
            return self._clean(obj.tolist())
        if isinstance(obj, pd.DataFrame):
            return self._clean(obj.to_dict(orient="records"))
        if isinstance(obj, pd.Series):
            return self._clean(obj.to_dict())
        if isinstance(obj, Path):
            return str(obj)
        if obj is pd.NA:
            return None
        return super(NpEncoder, self).default(obj)
