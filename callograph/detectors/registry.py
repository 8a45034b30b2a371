"""Fixed name registries and finding messages shared by the detectors.

Qualified names are the dotted names produced by
``SourceModel.qualified_name`` after import resolution, so ``from time import
time as now; now()`` matches ``time.time``.
"""

from __future__ import annotations

from collections.abc import Mapping

# ---------------------------------------------------------------------------
# Purity
# ---------------------------------------------------------------------------

# In-place methods of list, dict, set, deque, bytearray and array-likes
MUTATING_METHODS = frozenset(
    {
        "append",
        "appendleft",
        "extend",
        "extendleft",
        "insert",
        "pop",
        "popleft",
        "popitem",
        "remove",
        "clear",
        "sort",
        "reverse",
        "fill",
        "rotate",
        "update",
        "setdefault",
        "add",
        "discard",
    }
)

# Ambient objects whose mere use reaches outside the function
GLOBAL_OBJECTS: Mapping[str, str] = {
    "sys": "sys",
    "builtins": "builtins",
    "__main__": "__main__",
    "os.environ": "os.environ",
    "builtins.globals": "globals",
    "builtins.__builtins__": "__builtins__",
}

ENVIRON_NAMES = frozenset({"os.environ", "os.environb"})
ENVIRON_CALLS = frozenset({"os.getenv", "os.getenvb", "os.environ.get", "os.putenv", "os.unsetenv"})

CONSOLE_CALLS = frozenset({"builtins.print", "builtins.input", "pprint.pprint", "pprint.pp"})
CONSOLE_STREAMS = ("sys.stdout", "sys.stderr", "sys.__stdout__", "sys.__stderr__")

NONDETERMINISTIC_CALLS = frozenset(
    {
        "time.time",
        "time.time_ns",
        "time.monotonic",
        "time.monotonic_ns",
        "time.perf_counter",
        "time.perf_counter_ns",
        "time.process_time",
        "random.random",
        "random.randint",
        "random.randrange",
        "random.randbytes",
        "random.getrandbits",
        "random.choice",
        "random.choices",
        "random.sample",
        "random.shuffle",
        "random.uniform",
        "random.gauss",
        "random.normalvariate",
        "uuid.uuid1",
        "uuid.uuid4",
        "os.urandom",
        "secrets.token_bytes",
        "secrets.token_hex",
        "secrets.token_urlsafe",
        "secrets.choice",
        "secrets.randbelow",
        "secrets.randbits",
    }
)

# Constructors of "now" values, keyed to the type they instantiate
CURRENT_TIME_CONSTRUCTORS: Mapping[str, str] = {
    "datetime.datetime.now": "datetime.datetime",
    "datetime.datetime.today": "datetime.datetime",
    "datetime.datetime.utcnow": "datetime.datetime",
    "datetime.date.today": "datetime.date",
}

MUTATES_PARAMETER = "Mutates parameter `{name}`"
MUTATES_PARAMETER_VIA = "Mutates parameter `{name}` via `{method}()`"
WRITES_OUTER_SCOPE = "Writes to outer scope `{name}`"
MUTATES_RECEIVER = "Mutates `{receiver}.{attr}`"
ACCESSES_GLOBAL = "Accesses global `{name}`"
ACCESSES_ENVIRON = "Accesses `os.environ` (non-deterministic)"
WRITES_CONSOLE = "Writes to console"
CALLS_NONDETERMINISTIC = "Calls {name}() (non-deterministic)"
INSTANTIATES_CURRENT_TIME = "Instantiates {name} (non-deterministic)"
EMPTY_EXCEPT = "Empty except block (error swallowed)"

# ---------------------------------------------------------------------------
# Async safety
# ---------------------------------------------------------------------------

GATHER_CALLS = frozenset({"asyncio.gather"})

# Free functions taking a callback: qualified name -> callback argument index
ITERATION_CALLS: Mapping[str, int] = {
    "builtins.map": 0,
    "builtins.filter": 0,
    "functools.reduce": 0,
}

# Collection methods taking a callback as first argument
ITERATION_METHODS = frozenset({"map", "apply", "applymap", "filter", "for_each", "foreach"})

# Event-listener registration: method name -> handler argument index
EVENT_LISTENER_METHODS: Mapping[str, int] = {
    "add_signal_handler": 1,
    "add_reader": 1,
    "add_writer": 1,
    "call_soon": 0,
    "call_soon_threadsafe": 0,
    "call_later": 1,
    "call_at": 1,
    "add_done_callback": 0,
    "add_event_listener": 1,
    "addEventListener": 1,
    "add_event_handler": 1,
    "add_listener": 1,
    "on": 1,
    "connect": 0,
}

EVENT_LISTENER_CALLS: Mapping[str, int] = {
    "signal.signal": 1,
    "atexit.register": 0,
}

# Rejection-handler chain methods: method name -> errback argument index
REJECTION_HANDLER_METHODS: Mapping[str, int] = {
    "catch": 0,
    "addErrback": 0,
    "addCallbacks": 1,
    "then": 1,
}

# Methods that attach handlers to an awaitable, consuming it
CHAIN_METHODS = frozenset(
    {
        "then",
        "catch",
        "finally",
        "add_done_callback",
        "addCallback",
        "addErrback",
        "addBoth",
        "addCallbacks",
    }
)

FLOATING_AWAITABLE = "Floating awaitable"
FLOATING_AWAITABLE_IN_LOOP = "Floating awaitable inside loop"
UNAWAITED_GATHER = "Unawaited asyncio.gather()"
GATHER_UNHANDLED = "asyncio.gather() contains unhandled awaitable"
ASYNC_ITERATION_CALLBACK = "Async callback inside iteration call"
ASYNC_EVENT_LISTENER = "Async event listener without boundary"
ERROR_SWALLOWED_ERRBACK = "Error swallowed in errback"
MISSING_ERROR_BOUNDARY = "Async function contains await but has no error boundary (try/except)"

# Findings that make a function's callers "call an awaitable-returning function"
AWAITABLE_MESSAGES = frozenset(
    {FLOATING_AWAITABLE, FLOATING_AWAITABLE_IN_LOOP, UNAWAITED_GATHER, GATHER_UNHANDLED}
)
