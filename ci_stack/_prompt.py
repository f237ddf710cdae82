# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import string
from typing import Callable
from typing import Collection
from typing import Optional


def get_user_choice(
        choice_name: str,
        allowed_values: Collection[str],
        read: Callable[[], str] = input,
        ) -> Optional[str]:
    """Ask until an allowed value or its shortcut is typed; None on end of input."""
    options = []
    shortcuts = {}
    for option in allowed_values:
        for c in option:
            if c in shortcuts:
                continue
            if c not in string.ascii_letters:
                continue
            shortcuts[c.casefold()] = option
            options.append(option.replace(c, f'[{c}]', 1))
            break
        else:
            options.append(option)
    options = ', '.join(options)
    while True:
        print(f"{choice_name} ({options} or Ctrl+D to exit): ", end='', flush=True)
        try:
            choice = read().strip()
        except EOFError:
            print("No choice")
            return None
        choice = shortcuts.get(choice, choice)
        if choice in allowed_values:
            return choice
        print(f"Unknown choice: {choice!r}")


def confirm(question: str, read: Callable[[], str] = input) -> bool:
    return get_user_choice(question, ['yes', 'no'], read) == 'yes'
