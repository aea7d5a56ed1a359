"""
Prints runtime values back into Harlowe source code.
"""
import json

from harlowe.harlowe_datatypes import Datamap, Dataset, HarloweValue, format_number


class SourcePrinter:
    """Formats runtime values into source strings that re-create them when evaluated."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, Datamap):
            return self._pformat_datamap
        if isinstance(obj, Dataset):
            return self._pformat_dataset
        if isinstance(obj, HarloweValue):
            return self._pformat_composite
        if isinstance(obj, list):
            return self._pformat_array
        # Default to Python's repr for unknown types
        return lambda o: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_number,
            float: self._pformat_number,
            bool: self._pformat_bool,
            list: self._pformat_array,
            tuple: self._pformat_array,
            Datamap: self._pformat_datamap,
            Dataset: self._pformat_dataset,
        }

    def _pformat_str(self, obj):
        return json.dumps(obj, ensure_ascii=False)

    def _pformat_number(self, obj):
        return format_number(obj)

    def _pformat_bool(self, obj):
        return "true" if obj else "false"

    def _pformat_array(self, obj):
        return "(a:" + ",".join(self.pformat(item) for item in obj) + ")"

    def _pformat_datamap(self, obj):
        # Entries are printed in natural order of their names, so equal
        # datamaps always print identically.
        from harlowe.harlowe_values import natural_sort_key
        keys = sorted(obj.keys(), key=natural_sort_key)
        parts = []
        for key in keys:
            parts.append(self.pformat(key))
            parts.append(self.pformat(obj[key]))
        return "(dm:" + ",".join(parts) + ")"

    def _pformat_dataset(self, obj):
        # Iteration order is already the canonical sort order.
        return "(ds:" + ",".join(self.pformat(item) for item in obj) + ")"

    def _pformat_composite(self, obj):
        return obj.to_source()
