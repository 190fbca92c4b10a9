'''Apply sound changes to a lexicon

Exceptions:
    RuleFailed   -- exception to mark that a rule failed
    RulesetError -- exception carrying every error from compiling a ruleset

Classes:
    CategoryEdit      -- defines, extends or reduces a category
    Target            -- a pattern and the positions of its matches to act on
    LocalEnvironment  -- context immediately around the target
    GlobalEnvironment -- context anywhere in the word
    EnvironmentGroup  -- environments that must all match
    Predicate         -- a change guarded by environments and exceptions
    Rule              -- represents a sound change rule
    AST               -- a compiled ruleset
    InterpreterState  -- categories and graphemes in force during a run

Functions:
    parseRuleset   -- compiles a ruleset, collecting errors
    compileRuleset -- compiles a ruleset, raising on any error
    compileLine    -- compiles a single statement
    editCategory   -- applies a category edit to an interpreter state
    execute        -- runs one statement over a set of words
    apply          -- applies a compiled ruleset to a set of words
    run            -- compiles and applies a ruleset to a set of words
''''''
==================================== To-do ====================================
=== Features ===
Rule flags (ignore, rtl, repeat, persist, chance) and blocks
Copy and move changes (>^, >^?)
'''

import logging
import logging.config
import os.path
import re
from dataclasses import dataclass, field, replace
from .core import LangException, RuleError, CompilerError, TokenError, FormatError, Cat, Word, sortGraphs, intoPhones
from ._pattern import (
    tokenise, compilePattern, compileCatOrEls, expected, unescape, resolveElements, matchPattern,
    Pattern, Text, CatRef, Category, Ditto, TargetRef, RepeatN, Placeholder,
)

# == Constants == #
__location__ = os.path.join(os.path.dirname(os.path.realpath(__file__)), 'logging.conf')
COMMENT_REGEX = re.compile(r'(?<!\\)//.*')
CHANGE_ELEMENTS = (Text, CatRef, Category, Ditto, TargetRef, RepeatN)

# == Globals == #
logger = None

# == Exceptions == #
class RuleFailed(LangException):
    '''Used to indicate that the rule failed to be applied.'''

class RulesetError(LangException):
    '''Raised when one or more statements of a ruleset failed to compile.'''
    def __init__(self, errors):
        super().__init__(f'{len(errors)} statement(s) failed to compile')
        self.errors = errors

# == Classes == #
@dataclass
class CategoryEdit:
    name: str
    op: str
    elements: list

    def __str__(self):
        return f'{self.name} {self.op} {", ".join(str(element) for element in self.elements)}'

@dataclass
class Target:
    pattern: Pattern
    positions: list = field(default_factory=list)

    def __str__(self):
        if not self.positions:
            return str(self.pattern)
        return f'{self.pattern}@{"|".join(str(position) for position in self.positions)}'

    def indices(self):
        '''Convert the 1-based positions into list indices.'''
        return [position-1 if position > 0 else position for position in self.positions]

@dataclass
class LocalEnvironment:
    left: Pattern
    right: Pattern

    def __str__(self):
        return f'{self.left}_{self.right}'

    def match(self, word, start, stop, cats=None):
        target = word.phones[start:stop]
        if matchPattern(word, self.right, stop, cats, target) is None:
            return False
        return any(
            matchPattern(word, self.left, pos, cats, target, end=start) is not None
            for pos in reversed(range(start+1))
        )

@dataclass
class GlobalEnvironment:
    pattern: Pattern
    positions: list = field(default_factory=list)

    def __str__(self):
        return str(Target(self.pattern, self.positions))

    def match(self, word, start, stop, cats=None):
        target = word.phones[start:stop]
        if self.positions:
            indices = [position if position >= 0 else len(word)-1+position for position in self.positions]
        else:
            indices = range(len(word))
        return any(
            matchPattern(word, self.pattern, index, cats, target) is not None
            for index in indices if 0 <= index < len(word)
        )

@dataclass
class EnvironmentGroup:
    patterns: list

    def __str__(self):
        return ' & '.join(str(pattern) for pattern in self.patterns)

    def match(self, word, start, stop, cats=None):
        return all(pattern.match(word, start, stop, cats) for pattern in self.patterns)

@dataclass
class Predicate:
    changes: list
    environments: list = field(default_factory=list)
    exceptions: list = field(default_factory=list)

    def __str__(self):
        string = '> ' + ', '.join(str(change) for change in self.changes)
        if self.environments:
            string += ' / ' + ', '.join(str(group) for group in self.environments)
        if self.exceptions:
            string += ' ! ' + ', '.join(str(group) for group in self.exceptions)
        return string

    def check(self, word, start, stop, cats=None):
        if any(group.match(word, start, stop, cats) for group in self.exceptions):
            logger.debug('>> Matched an exception')
            return False
        if not self.environments or any(group.match(word, start, stop, cats) for group in self.environments):
            logger.debug('>> Matched an environment, check succeeded')
            return True
        logger.debug('>> Environment doesn\'t match')
        return False

@dataclass
class Rule:
    '''Class for representing a sound change rule.

    Instance variables:
        targets    -- target patterns, each with optional positions (list)
        predicates -- alternative changes with their conditions, tried in order (list)
        rule       -- the rule as a string (str)

    Methods:
        apply      -- apply the rule to a word
        checkMatch -- find the predicate that applies to a match
    '''
    targets: list
    predicates: list
    rule: str = field(default='', compare=False)

    def __repr__(self):
        return f"Rule('{self!s}')"

    def __str__(self):
        if self.rule:
            return self.rule
        targets = ', '.join(str(target) for target in self.targets)
        return ' '.join([targets] + [str(predicate) for predicate in self.predicates])

    def apply(self, word, cats=None):
        '''Apply the sound change rule to a single word.

        All matches are found on the input word and changed simultaneously.

        Arguments:
            word -- the word to which the rule is to be applied (Word)
            cats -- the category table in force (dict)

        Raises RuleFailed if the rule did not apply to the word.
        '''
        if cats is None:
            cats = {}
        logger.debug(f'This rule: `{self}`')
        # Get all target matches, filtered by given positions
        logger.debug('Begin matching targets')
        matches = []
        for i, target in enumerate(self.targets):
            logger.debug(f'> Matching `{target}`')
            _matches = []
            # Insertions never go before the leading boundary
            for pos in range(1 if target.pattern.isnull else 0, len(word)):
                trace = matchPattern(word, target.pattern, pos, cats)
                if trace is not None and (pos or trace.stop):
                    logger.debug(f'>> Target matched `{word[pos:trace.stop]}` at {pos}')
                    _matches.append((trace, i))
            if not _matches:
                logger.debug('>> No matches for this target')
            elif target.positions:
                _matches = [_matches[ix] for ix in target.indices() if -len(_matches) <= ix < len(_matches)]
            matches.extend(_matches)
        matches.sort(key=lambda match: (match[0].start, match[0].stop, match[1]))
        logger.debug(f'> Final matches at positions {[match[0].start for match in matches]}')
        if not matches:
            logger.debug('No matches')
            raise RuleFailed
        # Filter only those matches that fit a predicate - also record the corresponding change
        logger.debug('Check matches against environments and exceptions')
        changes = []
        for trace, i in matches:
            logger.debug(f'> Checking match at {trace.start}')
            predicate = self.checkMatch(trace, word, cats)
            if predicate is None:
                logger.debug(f'>> Match at {trace.start} failed')
            else:
                change = predicate.changes[i % len(predicate.changes)]
                logger.debug(f'>>> Found `{change}`')
                changes.append((trace, change))
        if not changes:
            logger.debug('No matches matched environment')
            raise RuleFailed
        # Filter overlaps, earlier matches win
        logger.debug('Filter out overlapping matches')
        applied = []
        for trace, change in changes:
            if applied and trace.start < applied[-1][0].stop:
                logger.debug(f'>> Match at {trace.start} overlaps match at {applied[-1][0].start}')
            else:
                applied.append((trace, change))
        logger.debug(f'Applying matches to `{word}`')
        for trace, change in reversed(applied):
            phones = realiseChange(change, word, trace, cats)
            logger.debug(f'> Changing `{word.phones[trace.start:trace.stop]}` to `{phones}` at {trace.start}')
            word = word.replace(trace.start, trace.stop, phones)
        return word

    def checkMatch(self, trace, word, cats=None):
        for predicate in self.predicates:
            if predicate.check(word, trace.start, trace.stop, cats):
                return predicate
        logger.debug('>> No predicate applies, check failed')
        return None

@dataclass
class AST:
    statements: list = field(default_factory=list)

    def __len__(self):
        return len(self.statements)

    def __getitem__(self, key):
        return self.statements[key]

    def __iter__(self):
        yield from self.statements

@dataclass
class InterpreterState:
    categories: dict = field(default_factory=dict)
    graphs: tuple = ()
    separator: str = ''
    warnings: list = field(default_factory=list)

# == Functions == #
def realiseChange(change, word, trace, cats=None):
    '''Build the phones that replace a target match.

    Categories take the value at the same index as the corresponding category match in
    the target, cycling through the target's category matches. An index past the end of
    a shorter change category wraps around it, so `[N][D] > [N][N]` with N = m,n and
    D = b,d,g turns `ng` into `nm`. The change itself is picked the same way: target k
    takes change k modulo the number of changes.

    Returns a list
    '''
    if cats is None:
        cats = {}
    target = word.phones[trace.start:trace.stop]
    indices = trace.categoryIndices()
    phones = []
    last = []
    ix = 0
    for element in change:
        if isinstance(element, Text):
            _phones = intoPhones(element.text, word.graphs, word.separator)
        elif isinstance(element, Category) and element.isnull:
            _phones = []
        elif isinstance(element, (Category, CatRef)):
            if not indices:
                raise RuleError('change contains a category but target did not')
            if isinstance(element, CatRef):
                values = element.resolve(cats)
            else:
                values = resolveElements(element.elements, cats, word.graphs, word.separator)
            if not values:
                raise RuleError(f'category {element} is empty')
            _phones = list(values[indices[ix] % len(values)])
            ix = (ix + 1) % len(indices)
        elif isinstance(element, Ditto):
            if phones:
                _phones = phones[-1:]
            else:
                _phones = word.phones[trace.start-1:trace.start] if trace.start else []
        elif isinstance(element, TargetRef):
            _phones = element.resolveTarget(target)
        elif isinstance(element, RepeatN):
            del phones[len(phones)-len(last):]
            _phones = last * element.count
        else:
            raise RuleError(f'invalid change element: {element}')
        phones.extend(_phones)
        last = _phones
    return phones

def skip(tokens, i):
    while i < len(tokens) and tokens[i].type == 'WHITESPACE':
        i += 1
    return i

def compilePositions(token):
    return [int(position) for position in token.value[1:].split('|')]

def compileTargets(tokens, i=0):
    targets = []
    while True:
        start = i
        pattern, i = compilePattern(tokens, i)
        for element in pattern:
            if isinstance(element, TargetRef):
                raise TokenError('target cannot refer to itself', tokens[start])
        positions = []
        if i < len(tokens) and tokens[i].type == 'POSITIONS':
            positions = compilePositions(tokens[i])
            i += 1
        targets.append(Target(pattern, positions))
        if i < len(tokens) and tokens[i].type == 'OR':
            i = skip(tokens, i+1)
        else:
            return targets, i

def checkChange(pattern, token):
    for element in pattern:
        if not isinstance(element, CHANGE_ELEMENTS):
            raise TokenError(f'{element.type.lower()} not allowed in a change', token)

def compileChanges(tokens, i):
    changes = []
    while True:
        start = i
        pattern, i = compilePattern(tokens, i)
        if start < len(tokens):
            checkChange(pattern, tokens[start])
        if i < len(tokens) and tokens[i].type == 'POSITIONS':
            raise TokenError('changes cannot have positions', tokens[i])
        changes.append(pattern)
        if i < len(tokens) and tokens[i].type == 'OR':
            i = skip(tokens, i+1)
        else:
            return changes, i

def compileEnvironment(tokens, i):
    start = i
    pattern, i = compilePattern(tokens, i, placeholder=True)
    positions = []
    if i < len(tokens) and tokens[i].type == 'POSITIONS':
        positions = compilePositions(tokens[i])
        i += 1
    placeholders = [token for token in tokens[start:i] if token.type == 'PLACEHOLDER']
    if len(placeholders) > 1:
        raise TokenError('only one placeholder is allowed', placeholders[1])
    elif placeholders:
        if positions:
            raise TokenError('local environments cannot have positions', tokens[i-1])
        ix = next(ix for ix, element in enumerate(pattern) if isinstance(element, Placeholder))
        return LocalEnvironment(Pattern(pattern[:ix]), Pattern(pattern[ix+1:])), i
    elif not pattern.elements:
        raise expected('environment', tokens, start)
    return GlobalEnvironment(pattern, positions), i

def compileEnvironments(tokens, i):
    groups = []
    while True:
        patterns = []
        while True:
            environment, i = compileEnvironment(tokens, i)
            patterns.append(environment)
            j = skip(tokens, i)
            if j < len(tokens) and tokens[j].type == 'AND':
                i = skip(tokens, j+1)
            else:
                break
        groups.append(EnvironmentGroup(patterns))
        if i < len(tokens) and tokens[i].type == 'OR':
            i = skip(tokens, i+1)
        else:
            return groups, i

def compilePredicate(tokens, i, sugar=False):
    start = i
    changes = []
    environments = []
    exceptions = []
    if i < len(tokens) and tokens[i].type == 'CHANGE':
        changes, i = compileChanges(tokens, skip(tokens, i+1))
        i = skip(tokens, i)
    elif not sugar:
        raise expected('`>`', tokens, i)
    if i < len(tokens) and tokens[i].type == 'ENVIRONMENT':
        environments, i = compileEnvironments(tokens, skip(tokens, i+1))
        i = skip(tokens, i)
    if i < len(tokens) and tokens[i].type == 'EXCEPTION':
        exceptions, i = compileEnvironments(tokens, skip(tokens, i+1))
        i = skip(tokens, i)
    if i == start:
        raise expected('`>`, `/` or `!`', tokens, i)
    return Predicate(changes, environments, exceptions), i

def compileRule(tokens, rule=''):
    '''Compile a rule, rewriting epenthesis and deletion into the general form.

    `+ a / c_` compiles to the same rule as `[] > a / c_`, and `- a / c_` to the same
    rule as `a > [] / c_`.
    '''
    mode = None
    i = 0
    if tokens[0].type in ('EPENTHESIS', 'DELETION'):
        mode = tokens[0].type
        i = skip(tokens, 1)
    start = i
    targets, i = compileTargets(tokens, i)
    if mode is not None and any(not target.pattern.elements for target in targets):
        raise expected('pattern', tokens, start)
    i = skip(tokens, i)
    predicates = []
    while i < len(tokens):
        predicate, i = compilePredicate(tokens, i, sugar=mode is not None)
        predicates.append(predicate)
    if not predicates:
        if mode is None:
            raise expected('`>`', tokens, i)
        predicates = [Predicate([])]
    if mode == 'EPENTHESIS':
        changes = []
        for target in targets:
            checkChange(target.pattern, tokens[start])
            changes.append(target.pattern)
        targets = [Target(Pattern([Category([])]), target.positions) for target in targets]
        predicates = [
            replace(predicate, changes=changes) if ix == 0 or not predicate.changes else predicate
            for ix, predicate in enumerate(predicates)
        ]
    elif mode == 'DELETION':
        predicates = [replace(predicate, changes=[Pattern([Category([])])]) for predicate in predicates]
    return Rule(targets, predicates, rule)

def compileCategoryEdit(tokens):
    name = unescape(tokens[0].value)
    i = skip(tokens, 1)
    op = tokens[i].value
    elements, i = compileCatOrEls(tokens, skip(tokens, i+1))
    if i < len(tokens):
        raise TokenError('unexpected token', tokens[i])
    return CategoryEdit(name, op, elements)

def compileLine(line, linenum=0, offset=0):
    '''Compile a single statement.

    Arguments:
        line    -- the statement, without comments (str)
        linenum -- the line number, for error reporting (int)
        offset  -- the absolute byte offset of the line in the source (int)

    Returns a CategoryEdit or Rule. Raises CompilerError.
    '''
    tokens = list(tokenise(line, linenum, offset))
    while tokens and tokens[-1].type == 'WHITESPACE':
        del tokens[-1]
    tokens = tokens[skip(tokens, 0):]
    if not tokens:
        return None
    if tokens[0].type == 'TEXT':
        i = skip(tokens, 1)
        if i < len(tokens) and tokens[i].type == 'EDIT':
            return compileCategoryEdit(tokens)
    return compileRule(tokens, line.strip())

def parseRuleset(source):
    '''Compile a ruleset, recovering from errors.

    Each line holds at most one statement; a statement that fails to compile is
    skipped and its error collected.

    Arguments:
        source -- the ruleset (str)

    Returns an AST, whose statements carry UTF-8 byte spans, and a list of CompilerError.
    '''
    statements = []
    errors = []
    offset = 0
    for linenum, line in enumerate(source.splitlines(keepends=True)):
        code = COMMENT_REGEX.sub('', line.rstrip('\r\n'))
        try:
            statement = compileLine(code, linenum, offset)
        except CompilerError as e:
            logger.warning(f'{code.strip()!r} failed to compile due to bad formatting: {e}')
            errors.append(e)
        else:
            if statement is not None:
                start = offset + len(code.encode()) - len(code.lstrip().encode())
                statements.append((statement, (start, offset+len(code.rstrip().encode()))))
        offset += len(line.encode())
    return AST(statements), errors

def compileRuleset(source):
    '''Compile a ruleset. Raises RulesetError carrying every error if any statement failed.'''
    ast, errors = parseRuleset(source)
    if errors:
        raise RulesetError(errors)
    return ast

def editCategory(state, edit):
    '''Apply a category edit, returning the new interpreter state.

    Operands are resolved against the categories as they stand. Extending or reducing
    an undefined category, or referencing one, is recorded as a warning and otherwise
    ignored.
    '''
    warnings = list(state.warnings)
    values = []
    for element in edit.elements:
        try:
            values.extend(resolveElements([element], state.categories, state.graphs, state.separator))
        except RuleError as e:
            logger.warning(f'`{edit}`: {e}')
            warnings.append(f'`{edit}`: {e}')
    categories = dict(state.categories)
    if edit.op == '=':
        categories[edit.name] = Cat(values, edit.name)
    elif edit.name not in categories:
        logger.warning(f'`{edit}`: category {edit.name!r} is not defined')
        warnings.append(f'`{edit}`: category {edit.name!r} is not defined')
    elif edit.op == '+=':
        categories[edit.name] = categories[edit.name] + values
    else:
        categories[edit.name] = categories[edit.name] - values
    return replace(state, categories=categories, warnings=warnings)

def execute(statement, state, words):
    '''Run one statement over a set of words.

    Returns the new interpreter state and the new list of words.
    '''
    if isinstance(statement, CategoryEdit):
        return editCategory(state, statement), words
    warnings = list(state.warnings)
    _words = []
    for word in words:
        wordin = word
        try:
            word = statement.apply(word, state.categories)
        except RuleFailed:
            logger.info(f'`{statement}` does not apply to `{word}`')
        except RuleError as e:
            logger.warning(f'`{statement}` execution suffered an error: {e}')
            warnings.append(f'`{statement}`: {e}')
        else:
            if wordin == word:
                logger.info(f'`{statement}` does not change `{word}`')
            else:
                logger.info(f'`{wordin}` -> `{statement}` -> `{word}`')
        _words.append(word)
    return replace(state, warnings=warnings), _words

def apply(ast, words, graphs=(), separator=''):
    '''Applies a compiled ruleset to a set of words.

    Arguments:
        ast       -- the compiled ruleset (AST)
        words     -- the words to which the rules are to be applied (list)
        graphs    -- the grapheme inventory used to parse the words (iterable)
        separator -- the separator used between ambiguous graphemes (str)

    Raises FormatError for an invalid grapheme inventory or word.
    Returns the transformed words (list) and the final InterpreterState.
    '''
    graphs = sortGraphs(graphs)
    state = InterpreterState(graphs=graphs, separator=separator)
    wordset = []
    for word in words:
        if not isinstance(word, str):
            raise FormatError(f'invalid word: {word!r}')
        wordset.append(Word(word, graphs, separator))
        logger.debug(f'Segments: {wordset[-1].phones}')
    for statement, span in ast:
        state, wordset = execute(statement, state, wordset)
    return [str(word) for word in wordset], state

def run(wordset, ruleset, graphs=(), separator='', output='list'):
    '''Applies a set of sound change rules to a set of words.

    Arguments:
        wordset   -- the words to which the rules are to be applied (str or list)
        ruleset   -- the rules which are to be applied to the words (str or AST)
        graphs    -- the grapheme inventory used to parse the words (iterable)
        separator -- the separator used between ambiguous graphemes (str)
        output    -- what form to provide the output in - one of 'list', 'str' (str)

    Raises RulesetError if the ruleset fails to compile.
    Returns a str or list.
    '''
    if isinstance(wordset, str):
        wordset = wordset.splitlines()
    if isinstance(ruleset, str):
        ruleset = compileRuleset(ruleset)
    wordset, state = apply(ruleset, wordset, graphs, separator)
    if output == 'str':
        return '\n'.join(wordset)
    return wordset

def setupLogging(filename=__location__, loggername='soundshift'):
    global logger
    if filename is not None:
        logging.config.fileConfig(filename, disable_existing_loggers=False)
    logger = logging.getLogger(loggername)

# Setup logging
setupLogging()
