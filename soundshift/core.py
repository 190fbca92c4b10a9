'''Base classes and functions

Exceptions:
    LangException -- Base exception
    FormatError   -- Error for incorrect formatting
    RuleError     -- Error raised while running a rule
    CompilerError -- Error raised while compiling a ruleset
    TokenError    -- Compiler error positioned on a token

Classes:
    Token -- token produced by the ruleset tokeniser
    Cat   -- represents a category of phone sequences
    Word  -- represents a run of text as a list of phones

Functions:
    sortGraphs  -- orders a grapheme inventory longest-first
    parseWord   -- parses a string of graphemes into phones
    intoPhones  -- splits a string into phones without adding boundaries
    unparseWord -- renders a list of phones back into a string
'''

import re
from dataclasses import dataclass, field, InitVar

# == Constants == #
BOUNDARY = '#'
WHITESPACE_REGEX = re.compile(r'\s+')

# == Exceptions == #
class LangException(Exception):
    '''Base class for exceptions in this package'''

class FormatError(LangException):
    '''Exception raised for errors in formatting objects.'''

class RuleError(LangException):
    '''Exception raised for errors when running rules.'''

class CompilerError(LangException):
    '''Base class for errors during compilation.'''
    def __init__(self, error, value, linenum, column, span=None):
        super().__init__(f'{error}: `{value}` @ {linenum}:{column}')
        self.error = error
        self.value = value
        self.linenum = linenum
        self.column = column
        if span is None:
            span = (column, column+len(value))
        self.span = span

    @property
    def message(self):
        return self.args[0]

class TokenError(CompilerError):
    '''Base class for errors involving tokens.'''
    def __init__(self, error, token):
        super().__init__(error, token.value, token.linenum, token.column, token.span)

# == Classes == #
@dataclass
class Token:
    type: str
    value: str
    linenum: int
    column: int
    offset: int = 0  # Absolute byte offset of the token in the source

    def __iter__(self):
        yield self.type
        yield self.value

    @property
    def span(self):
        return self.offset, self.offset+len(self.value.encode())

@dataclass
class Cat:
    '''Represents a category of phone sequences.

    Each value is a tuple of phones, so a category can hold multi-phone members.
    Values are compared by full sequence equality.
    '''
    values: list = field(default_factory=list)
    name: str = field(default=None, compare=False)

    def __post_init__(self):
        self.values = [asSequence(value) for value in self.values]

    def __str__(self):
        return f'[{", ".join("".join(value) for value in self)}]'

    def __len__(self):
        return len(self.values)

    def __getitem__(self, key):
        return self.values[key]

    def __iter__(self):
        yield from self.values

    def __contains__(self, item):
        return asSequence(item) in self.values

    def __add__(self, cat):
        return Cat(self.values + [asSequence(value) for value in cat], self.name)

    def __sub__(self, cat):
        cat = Cat(list(cat))
        return Cat([value for value in self if value not in cat], self.name)

@dataclass
class Word:
    '''Represents a word as a list of phones.

    The word owns the grapheme inventory and separator it was parsed with, so it
    always knows how to render itself again.

    Instance variables:
        phones    -- the phones of the word, including boundaries (list)
        graphs    -- the grapheme inventory, longest first (tuple)
        separator -- the separator used between ambiguous graphemes (str)

    Methods:
        replace -- return a copy of the word with a range of phones replaced
    '''
    phones: list = field(init=False)
    lexeme: InitVar[object] = ''
    graphs: tuple = ()
    separator: str = ''

    def __post_init__(self, lexeme):
        self.graphs = sortGraphs(self.graphs)
        if isinstance(lexeme, str):
            self.phones = parseWord(lexeme, self.graphs, self.separator)
        else:
            phones = []
            for phone in lexeme:
                if not phone:
                    continue
                elif not (phone == BOUNDARY and phones and phones[-1] == BOUNDARY):
                    phones.append(phone)
            self.phones = phones

    def __repr__(self):
        return f'Word({str(self)!r})'

    def __str__(self):
        return unparseWord(self.phones, self.graphs, self.separator)

    def __len__(self):
        return len(self.phones)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return Word(self.phones[item], self.graphs, self.separator)
        else:
            return self.phones[item]

    def __iter__(self):
        yield from self.phones

    def __contains__(self, item):
        return item in self.phones

    def replace(self, start, stop, phones):
        '''Return a new word with phones[start:stop] replaced by the given phones.'''
        return Word(self.phones[:start] + list(phones) + self.phones[stop:], self.graphs, self.separator)

# == Functions == #
def asSequence(value):
    if isinstance(value, str):
        return (value,)
    return tuple(value)

def sortGraphs(graphs):
    '''Order a grapheme inventory longest-first.

    Raises FormatError if the inventory contains an empty grapheme.
    '''
    graphs = list(graphs)
    for graph in graphs:
        if not isinstance(graph, str) or not graph:
            raise FormatError(f'invalid grapheme: {graph!r}')
    return tuple(sorted(dict.fromkeys(graphs), key=len, reverse=True))

def intoPhones(string, graphs=(), separator=''):
    '''Split a string into phones using longest-match segmentation.

    Arguments:
        string    -- the string to split (str)
        graphs    -- the grapheme inventory, longest first (tuple)
        separator -- the separator to discard between graphemes (str)

    Returns a list
    '''
    polygraphs = sorted(filter(lambda g: len(g) > 1, graphs), key=len, reverse=True)
    if not polygraphs:
        if separator:
            string = string.replace(separator, '')
        return list(string)
    phones = []
    while string:
        if separator:
            while string.startswith(separator):
                string = string[len(separator):]
            if not string:
                break
        graph = next(filter(string.startswith, polygraphs), string[0])
        phones.append(graph)
        string = string[len(graph):]
    return phones

def parseWord(string, graphs=(), separator=''):
    '''Parse a string into phones, adding word boundaries.

    Runs of whitespace become single internal boundaries, and the whole word is
    wrapped in boundaries.

    Arguments:
        string    -- the input text (str)
        graphs    -- the grapheme inventory, longest first (tuple)
        separator -- the separator to discard between graphemes (str)

    Returns a list
    '''
    string = BOUNDARY + BOUNDARY.join(WHITESPACE_REGEX.split(string.strip())) + BOUNDARY
    return intoPhones(string, graphs, separator)

def unparseWord(phones, graphs=(), separator=''):
    '''Render a list of phones as a string.

    Boundaries become spaces, and the separator is inserted only where two adjacent
    phones would otherwise be re-read as a longer grapheme.

    Returns a str
    '''
    string = ''
    polygraphs = [graph for graph in graphs if len(graph) > 1]
    if not polygraphs or not separator:
        string = ''.join(phones)
        phones = []
    ambig = []
    for graph in phones:
        if graph == BOUNDARY:
            ambig = []
        elif ambig:
            ambig.append(graph)
            for i in range(len(ambig)):
                test = ''.join(ambig[i:])
                minlength = len(ambig[i])
                if any(test.startswith(poly) and len(poly) > minlength for poly in polygraphs):
                    string += separator
                    ambig = [graph]
                    break
            for i in range(len(ambig)):
                test = ''.join(ambig[i:])
                if any(poly.startswith(test) and poly != test for poly in polygraphs):
                    ambig = ambig[i:]
                    break
            else:
                ambig = []
        elif any(poly.startswith(graph) and poly != graph for poly in polygraphs):
            ambig.append(graph)
        string += graph
    return ' '.join(string.split(BOUNDARY)).strip()
