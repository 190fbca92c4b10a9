'''A rule language for historical sound change'''

from .core import LangException, FormatError, RuleError, CompilerError, TokenError, Cat, Word, parseWord, unparseWord
from ._pattern import Pattern, parsePattern, matchPattern
from .sce import (
    RuleFailed, RulesetError, Rule, AST, InterpreterState,
    parseRuleset, compileRuleset, editCategory, apply, run, setupLogging,
)

ApplyError = FormatError
