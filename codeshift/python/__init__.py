"""Python language adapter: parser, modernization refactorings and recipes."""

from codeshift.python.parser import PythonParser

__all__ = ["PythonParser"]
