from context_compiler.tui.renderers import ContextConsoleUI

__all__ = ["ContextConsoleUI"]
