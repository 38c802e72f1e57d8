# protosched/interfaces/types.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Any, Callable, Hashable, Tuple

Phase = Hashable
Values = Tuple[Any, ...]

# Callback Types
Executor = Callable[..., Any]
Factory = Callable[..., Any]  # returns the spawned process, or None
TickCallback = Callable[[float], None]
UpdateHook = Callable[[Any, Any], None]
ErrorHandler = Callable[[BaseException], Any]
FaultHandler = Callable[[Any], None]
