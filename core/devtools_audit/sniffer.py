"""
sniffer.py - One-shot method interception ("sniffer")
=====================================================

A sniffer replaces one method on an object with a wrapper that:
  1. calls the original implementation with the same arguments,
  2. puts the original back (in a finally block, so also when it raises),
  3. on success only, hands (args..., result) to an observer.

Only the first call is observed. Calls made re-entrantly while the first one is
still running go straight to the original.

The same algorithm exists twice:
  - add_sniffer()  : for Python objects (used by the tests and by next_call())
  - SNIFFER_JS     : for the DevTools frontend, injected by sniff_expression()
                     to catch the Lighthouse panel building its report UI

This is the only place in the project that swaps behavior at runtime.
"""

import functools
import inspect
import json
from collections import namedtuple
from concurrent.futures import Future

from .errors import MethodNotFoundError, SnifferError

Call = namedtuple("Call", ["args", "kwargs", "result"])


def add_sniffer(receiver, method_name, override):
    """
    Observe the next call of receiver.<method_name>.

    Args:
        receiver: Any object or class. For a class, the wrapper is installed on
            the class, so the instance arrives as the first argument (both for
            the original and for the observer), like `this` in JavaScript.
        method_name: Name of a callable member of receiver.
        override: Called as override(*args, result, **kwargs) after a
            successful call.

    Returns:
        A cancel() function that removes the sniffer if it has not fired yet.

    Raises:
        MethodNotFoundError: method_name is not callable on receiver. Nothing
            is modified in that case.
        SnifferError: (from the wrapped call) the observer raised.
    """
    original = getattr(receiver, method_name, None)
    if not callable(original):
        raise MethodNotFoundError(method_name)

    owned = method_name in getattr(receiver, "__dict__", {})
    saved = inspect.getattr_static(receiver, method_name)
    decorator = None
    if not isinstance(receiver, type):
        target = original
    elif isinstance(saved, (staticmethod, classmethod)):
        decorator = type(saved)
        target = saved.__func__
    else:
        target = saved

    fired = False
    restored = False

    def restore():
        nonlocal restored
        if restored:
            return
        restored = True
        if owned:
            setattr(receiver, method_name, saved)
        else:
            delattr(receiver, method_name)

    @functools.wraps(target)
    def sniffer(*args, **kwargs):
        nonlocal fired
        if fired:
            return target(*args, **kwargs)
        fired = True
        try:
            result = target(*args, **kwargs)
        finally:
            restore()
        # In case of exception the override is never called
        try:
            override(*args, result, **kwargs)
        except Exception as e:
            raise SnifferError(f"Exception in overridden method '{method_name}': {e}") from e
        return result

    setattr(receiver, method_name, decorator(sniffer) if decorator else sniffer)

    def cancel():
        if not fired:
            restore()

    return cancel


def next_call(receiver, method_name):
    """Future resolved with a Call(args, kwargs, result) on the next call."""
    future = Future()

    def resolve(*args, **kwargs):
        *call_args, result = args
        future.set_result(Call(tuple(call_args), kwargs, result))

    add_sniffer(receiver, method_name, resolve)
    return future


# =============================================================================
# REMOTE (DevTools frontend) VERSION
# =============================================================================

SNIFFER_JS = """function addSniffer(receiver, methodName, override) {
  const original = receiver[methodName];
  if (typeof original !== 'function') {
    throw new Error('Cannot find method to override: ' + methodName);
  }
  let fired = false;
  receiver[methodName] = function(...args) {
    if (fired) {
      return original.apply(this, args);
    }
    fired = true;
    let result;
    try {
      result = original.apply(this, args);
    } finally {
      receiver[methodName] = original;
    }
    try {
      override.apply(this, [...args, result]);
    } catch (e) {
      throw new Error('Exception in overridden method \\'' + methodName + '\\': ' + e);
    }
    return result;
  };
}"""


def sniff_expression(receiver_expr, method_name):
    """
    JS expression evaluating to a Promise that resolves with the first argument
    of the next receiver.<method_name>(...) call, serialized with JSON.stringify.

    A missing method rejects the promise with "Cannot find method to override".
    """
    return f"""
new Promise(resolve => {{
  ({SNIFFER_JS})(
    {receiver_expr},
    {json.dumps(method_name)},
    (report) => resolve(JSON.stringify(report))
  );
}})
"""
