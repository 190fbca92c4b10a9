'''Pattern parsing and matching

Classes:
    Element       -- Base class for pattern elements
    Text          -- Element matching a literal run of graphemes
    CatRef        -- Element matching a named category
    Category      -- Element matching an inline category
    Optional      -- Element matching an optional sub-pattern
    Wildcard      -- Element matching one or more arbitrary segments
    RepeatN       -- Element requiring the previous element a fixed number of times
    RepeatWild    -- Element requiring one or more copies of the previous element
    Ditto         -- Element matching the second of two identical segments
    TargetRef     -- Element used to refer to the target
    Placeholder   -- Marks the target's position in an environment
    Pattern       -- A sequence of elements
    SingleMatch   -- An element that consumed exactly one phone
    MultipleMatch -- An element that consumed a range of phones, with its own nested matches
    MatchTrace    -- The ordered matches of a whole pattern

Functions:
    escape             -- escapes control characters in a string
    tokenise           -- returns a generator producing tokens
    compilePattern     -- compiles tokens into a pattern
    compileCatOrEls    -- compiles a comma-separated list of category elements
    parsePattern       -- parses a string utilising pattern notation into a pattern
    resolveElements    -- resolves category elements to phone sequences
    matchSequence      -- generates every match of a list of elements
    iterMatches        -- generates every match of a pattern to a word
    matchPattern       -- matches a pattern to a word at a given index
''''''
==================================== To-do ====================================
=== Implementation ===
Memoise element matches per position; chains of wildcards backtrack exponentially
'''

import re
from dataclasses import dataclass, field, replace
from .core import BOUNDARY, CompilerError, TokenError, RuleError, Token, intoPhones

## Constants
MAX_DEPTH = 16  # Maximum nesting of optionals
CONTROL_CHARACTERS = '[]{}<>()@!%^_, *?\\+-/=&"'
_CONTROL = re.escape(CONTROL_CHARACTERS)
TOKENS = {
    'WHITESPACE': r'\s+',
    'TEXT': fr'(?:[^{_CONTROL}\s]|\\[{_CONTROL}])+',
    'EDIT': r'[+\-]?=',
    'EPENTHESIS': r'\+',
    'DELETION': r'-',
    'POSITIONS': r'@-?\d+(?:\|-?\d+)*',
    'CHANGE': r'>',
    'ENVIRONMENT': r'/',
    'EXCEPTION': r'!',
    'OR': r',',
    'AND': r'&',
    'PLACEHOLDER': r'_',
    'NULL': r'\[\]',
    'LCAT': r'\[',
    'RCAT': r'\]',
    'LOPT': r'\(',
    'ROPT': r'\)\??',
    'REPEAT': r'\{\d+\}',
    'REPEATWILD': r'\{\*\*?\??\}',
    'WILDCARD': r'\*\*?\??',
    'TARGET': r'%',
    'REVERSED': r'<',
    'DITTO': r'"',
    'UNKNOWN': r'.',
}
TOKEN_REGEX = re.compile('|'.join(f'(?P<{type}>{regex})' for type, regex in TOKENS.items()))
ESCAPE_REGEX = re.compile(r'\\(.)')
CONTROL_REGEX = re.compile(f'([{_CONTROL}])')

## Classes
@dataclass(repr=False)
class Element:
    def __str__(self):
        return ''

    def __repr__(self):
        return f'{self.type}({str(self)!r})'

    @property
    def type(self):
        return self.__class__.__name__

    def match(self, word, pos, context):
        '''Generate (stop, matches) for each way this element matches at pos, most preferred first.'''
        return iter(())

@dataclass
class Context:
    cats: dict
    target: list = None
    start: int = 0

## Matching elements ##
@dataclass(repr=False)
class Text(Element):
    text: str

    def __str__(self):
        return escape(self.text)

    def match(self, word, pos, context):
        phones = intoPhones(self.text, word.graphs, word.separator)
        yield from matchPhones(self, phones, word, pos)

@dataclass(repr=False)
class CatRef(Element):
    name: str

    def __str__(self):
        return f'[{escape(self.name)}]'

    def resolve(self, cats):
        if self.name not in cats:
            raise RuleError(f'undefined category: {self.name!r}')
        return list(cats[self.name])

    def match(self, word, pos, context):
        yield from matchValues(self, self.resolve(context.cats), word, pos)

@dataclass(repr=False)
class Category(Element):
    elements: list = field(default_factory=list)

    def __str__(self):
        return f'[{", ".join(str(element) for element in self.elements)}]'

    @property
    def isnull(self):
        return not self.elements

    def match(self, word, pos, context):
        if self.isnull:  # Matches the gap between two phones
            yield pos, [MultipleMatch(self, pos, pos, [])]
        else:
            values = resolveElements(self.elements, context.cats, word.graphs, word.separator)
            yield from matchValues(self, values, word, pos)

@dataclass(repr=False)
class Wildcard(Element):
    greedy: bool = True
    extended: bool = False

    def __str__(self):
        return ('**' if self.extended else '*') + ('' if self.greedy else '?')

    @staticmethod
    def make(string):
        return Wildcard(greedy=not string.endswith('?'), extended=string.startswith('**'))

    def match(self, word, pos, context):
        end = pos
        while end < len(word) and (self.extended or word[end] != BOUNDARY):
            end += 1
        stops = range(pos+1, end+1)
        if self.greedy:
            stops = reversed(stops)
        for stop in stops:
            yield stop, [MultipleMatch(self, pos, stop, singles(self, pos, stop))]

@dataclass(repr=False)
class Ditto(Element):
    def __str__(self):
        return '"'

    def match(self, word, pos, context):
        if context.start < pos < len(word) and word[pos] == word[pos-1]:
            yield pos+1, [SingleMatch(self, pos, pos+1)]

@dataclass(repr=False)
class TargetRef(Element):
    direction: int = 1

    def __str__(self):
        return '%' if self.direction == 1 else '<'

    def resolveTarget(self, target):
        return list(target if self.direction == 1 else reversed(target))

    def match(self, word, pos, context):
        if context.target is not None:
            yield from matchPhones(self, self.resolveTarget(context.target), word, pos)

## Non-matching elements ##
@dataclass(repr=False)
class Optional(Element):
    pattern: 'Pattern'
    greedy: bool = True

    def __str__(self):
        return f'({self.pattern})' if self.greedy else f'({self.pattern})?'

    def match(self, word, pos, context):
        if not self.greedy:
            yield pos, [MultipleMatch(self, pos, pos, [])]
        for stop, matches in matchSequence(self.pattern.elements, word, pos, context):
            yield stop, [MultipleMatch(self, pos, stop, matches)]
        if self.greedy:
            yield pos, [MultipleMatch(self, pos, pos, [])]

@dataclass(repr=False)
class RepeatN(Element):
    count: int

    def __str__(self):
        return f'{{{self.count}}}'

    def repeat(self, element, word, pos, context, count=None):
        if count is None:
            for stop, matches in self.repeat(element, word, pos, context, self.count):
                yield stop, [MultipleMatch(self, pos, stop, matches)]
        elif count == 0:
            yield pos, []
        else:
            for stop, matches in element.match(word, pos, context):
                for end, rest in self.repeat(element, word, stop, context, count-1):
                    yield end, matches + rest

@dataclass(repr=False)
class RepeatWild(Element):
    greedy: bool = True
    extended: bool = False

    def __str__(self):
        return f'{{{Wildcard(self.greedy, self.extended)}}}'

    @staticmethod
    def make(string):
        wildcard = Wildcard.make(string[1:-1])
        return RepeatWild(greedy=wildcard.greedy, extended=wildcard.extended)

    def repeat(self, element, word, pos, context):
        for stop, matches in self._repeat(element, word, pos, context, True):
            yield stop, [MultipleMatch(self, pos, stop, matches)]

    def _repeat(self, element, word, pos, context, first):
        for stop, matches in element.match(word, pos, context):
            if not first and not self.extended and BOUNDARY in word.phones[pos:stop]:
                continue
            if stop == pos:  # Repeating an empty match would never terminate
                yield stop, matches
                continue
            if not self.greedy:
                yield stop, matches
            for end, rest in self._repeat(element, word, stop, context, False):
                yield end, matches + rest
            if self.greedy:
                yield stop, matches

@dataclass(repr=False)
class Placeholder(Element):
    def __str__(self):
        return '_'

QUANTIFIERS = (RepeatN, RepeatWild)

@dataclass
class Pattern:
    elements: list = field(default_factory=list)

    def __str__(self):
        return ''.join(str(element) for element in self.elements)

    def __len__(self):
        return len(self.elements)

    def __getitem__(self, key):
        return self.elements[key]

    def __iter__(self):
        yield from self.elements

    @property
    def isnull(self):
        return all(isinstance(element, Category) and element.isnull for element in self)

## Match traces ##
@dataclass
class SingleMatch:
    element: Element
    start: int
    stop: int

@dataclass
class MultipleMatch:
    element: Element
    start: int
    stop: int
    matches: list = field(default_factory=list)
    index: int = None  # Which category value was matched, for categories

@dataclass
class MatchTrace:
    matches: list
    start: int
    stop: int

    def __len__(self):
        return len(self.matches)

    def __getitem__(self, key):
        return self.matches[key]

    def __iter__(self):
        yield from self.matches

    def categoryIndices(self):
        '''Return the indices of every category value matched, in order.'''
        indices = []
        stack = list(reversed(self.matches))
        while stack:
            match = stack.pop()
            if isinstance(match, MultipleMatch):
                if match.index is not None:
                    indices.append(match.index)
                stack.extend(reversed(match.matches))
        return indices

## Functions
def escape(string):
    return CONTROL_REGEX.sub(r'\\\1', string)

def unescape(string):
    return ESCAPE_REGEX.sub(r'\1', string)

def tokenise(line, linenum=0, offset=0):
    '''Tokenise a line of the rule language.

    Arguments:
        line    -- the line to tokenise, without its newline (str)
        linenum -- the line number, for error reporting (int)
        offset  -- the absolute byte offset of the line in the source (int)

    Yields Token objects
    '''
    for match in TOKEN_REGEX.finditer(line):
        type = match.lastgroup
        value = match.group()
        column = match.start()
        token = Token(type, value, linenum, column, offset+len(line[:column].encode()))
        if type == 'UNKNOWN':
            raise TokenError('unexpected character', token)
        yield token

def expected(what, tokens, i):
    '''Return an error for a missing token at index i.'''
    if i < len(tokens):
        return TokenError(f'expected {what}', tokens[i])
    last = tokens[-1]
    column = last.column+len(last.value)
    return CompilerError(f'expected {what}', '', last.linenum, column, (last.span[1],)*2)

def compileCatOrEls(tokens, i=0):
    '''Compile a comma-separated list of literals and category references.

    Returns a list of Text and CatRef elements, and the index after the list.
    '''
    elements = []
    while True:
        if i < len(tokens) and tokens[i].type == 'TEXT':
            elements.append(Text(unescape(tokens[i].value)))
            i += 1
        elif i < len(tokens) and tokens[i].type == 'LCAT':
            if i+2 < len(tokens) and tokens[i+1].type == 'TEXT' and tokens[i+2].type == 'RCAT':
                elements.append(CatRef(unescape(tokens[i+1].value)))
                i += 3
            else:
                raise expected('category name', tokens, i+1)
        else:
            raise expected('category element', tokens, i)
        if i < len(tokens) and tokens[i].type == 'OR':
            i += 1
            if i < len(tokens) and tokens[i].type == 'WHITESPACE':
                i += 1
        else:
            return elements, i

def compileCategory(tokens, i):
    '''Compile a bracketed category starting at tokens[i].

    `[name]` is a category reference; anything else is an inline category.
    '''
    elements, i = compileCatOrEls(tokens, i+1)
    if i >= len(tokens) or tokens[i].type != 'RCAT':
        raise expected('`]`', tokens, i)
    if len(elements) == 1 and isinstance(elements[0], Text):
        return CatRef(elements[0].text), i+1
    return Category(elements), i+1

def compilePattern(tokens, i=0, depth=0, placeholder=False):
    '''Compile tokens into a pattern, stopping at the first token that cannot continue it.

    Arguments:
        tokens      -- the tokens to compile (list)
        i           -- the index to start at (int)
        depth       -- the current nesting of optionals (int)
        placeholder -- whether `_` may appear (bool)

    Returns a Pattern and the index after it.
    '''
    elements = []
    while i < len(tokens):
        token = tokens[i]
        type, value = token
        if type == 'TEXT':
            elements.append(Text(unescape(value)))
        elif type == 'LOPT':
            if depth >= MAX_DEPTH:
                raise TokenError('optionals nested too deeply', token)
            pattern, j = compilePattern(tokens, i+1, depth+1)
            if j >= len(tokens) or tokens[j].type != 'ROPT':
                raise expected('`)`', tokens, j)
            greedy = not tokens[j].value.endswith('?')
            if len(pattern) == 1 and isinstance(pattern[0], Wildcard):  # (*) is a wildcard that may match nothing
                pattern.elements[0] = replace(pattern[0], greedy=greedy)
            elements.append(Optional(pattern, greedy))
            i = j
        elif type == 'WILDCARD':
            elements.append(Wildcard.make(value))
        elif type in ('REPEAT', 'REPEATWILD'):
            if not elements or isinstance(elements[-1], QUANTIFIERS):
                raise TokenError('repetition must follow an element', token)
            if type == 'REPEAT':
                elements.append(RepeatN(int(value[1:-1])))
            else:
                elements.append(RepeatWild.make(value))
        elif type == 'NULL':
            elements.append(Category([]))
        elif type == 'LCAT':
            element, i = compileCategory(tokens, i)
            elements.append(element)
            continue
        elif type == 'TARGET':
            elements.append(TargetRef(1))
        elif type == 'REVERSED':
            elements.append(TargetRef(-1))
        elif type == 'DITTO':
            elements.append(Ditto())
        elif type == 'PLACEHOLDER' and placeholder:
            elements.append(Placeholder())
        else:
            break
        i += 1
    return Pattern(elements), i

def parsePattern(string, placeholder=False):
    '''Parse a string using pattern notation.

    Raises CompilerError if the whole string is not a single pattern.
    '''
    tokens = list(tokenise(string))
    if not tokens:
        return Pattern()
    pattern, i = compilePattern(tokens, placeholder=placeholder)
    if i < len(tokens):
        raise TokenError('unexpected token', tokens[i])
    return pattern

def resolveElements(elements, cats, graphs=(), separator=''):
    '''Resolve category elements to a list of phone sequences.

    Arguments:
        elements  -- Text and CatRef elements (list)
        cats      -- the category table (dict)
        graphs    -- the grapheme inventory used to split literals (tuple)
        separator -- the grapheme separator (str)

    Raises RuleError for an undefined category. Returns a list of tuples.
    '''
    values = []
    for element in elements:
        if isinstance(element, CatRef):
            values.extend(element.resolve(cats))
        else:
            values.append(tuple(intoPhones(element.text, graphs, separator)))
    return values

def singles(element, start, stop):
    return [SingleMatch(element, i, i+1) for i in range(start, stop)]

def matchPhones(element, phones, word, pos):
    stop = pos+len(phones)
    if word.phones[pos:stop] == phones:
        yield stop, singles(element, pos, stop)

def matchValues(element, values, word, pos):
    for index, value in enumerate(values):
        stop = pos+len(value)
        if value and tuple(word.phones[pos:stop]) == value:
            yield stop, [MultipleMatch(element, pos, stop, singles(element, pos, stop), index)]

def matchSequence(elements, word, pos, context, ix=0):
    '''Generate every match of elements[ix:] starting at pos, most preferred first.

    Quantifiers are applied to the element immediately before them.

    Yields (stop, matches) pairs.
    '''
    if ix >= len(elements):
        yield pos, []
        return
    element = elements[ix]
    if ix+1 < len(elements) and isinstance(elements[ix+1], QUANTIFIERS):
        alternatives = elements[ix+1].repeat(element, word, pos, context)
        ix += 2
    else:
        alternatives = element.match(word, pos, context)
        ix += 1
    for stop, matches in alternatives:
        for end, rest in matchSequence(elements, word, stop, context, ix):
            yield end, matches + rest

def iterMatches(word, pattern, start, cats=None, target=None, end=None):
    '''Generate every match of a pattern to a word at a given index.

    Arguments:
        word   -- the word to match against (Word)
        pattern -- the pattern to match (Pattern)
        start  -- the index of the first phone to match (int)
        cats   -- the category table used to resolve category references (dict)
        target -- the phones matched by the rule's target, for `%` and `<` (list)
        end    -- if given, only matches ending exactly here are produced (int)

    Yields MatchTrace objects
    '''
    context = Context(cats if cats is not None else {}, target, start)
    for stop, matches in matchSequence(list(pattern), word, start, context):
        if end is None or stop == end:
            yield MatchTrace(matches, start, stop)

def matchPattern(word, pattern, start, cats=None, target=None, end=None):
    '''Match a pattern to a word at a given index.

    Returns the preferred MatchTrace, or None if the pattern does not match.
    '''
    return next(iterMatches(word, pattern, start, cats, target, end), None)
