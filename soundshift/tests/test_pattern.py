import pytest
from pytest import raises
from .. import _pattern
from .._pattern import (
    parsePattern, matchPattern, iterMatches, tokenise, Pattern, Text, CatRef, Category, Wildcard,
    Optional, RepeatN, RepeatWild, Ditto, TargetRef, Placeholder, SingleMatch, MultipleMatch,
)
from ..core import CompilerError, RuleError, Cat, Word

## Fixtures
@pytest.fixture
def cats():
    return {
        'V': Cat(['a', 'e', 'i', 'o', 'u'], 'V'),
        'C': Cat(['p', 't', 'k', 'n', 'r'], 'C'),
        'D': Cat([('a', 'i'), ('a', 'u')], 'D'),
    }

def stops(word, string, start, cats=None):
    return [trace.stop for trace in iterMatches(Word(word), parsePattern(string), start, cats)]

## Tokenising
def test_tokenise():
    types = [token.type for token in tokenise('a > b / [C]_ ! %#@-1')]
    assert types == [
        'TEXT', 'WHITESPACE', 'CHANGE', 'WHITESPACE', 'TEXT', 'WHITESPACE', 'ENVIRONMENT',
        'WHITESPACE', 'LCAT', 'TEXT', 'RCAT', 'PLACEHOLDER', 'WHITESPACE', 'EXCEPTION',
        'WHITESPACE', 'TARGET', 'TEXT', 'POSITIONS',
    ]

def test_tokenise_escapes():
    tokens = list(tokenise(r'a\>b\ c'))
    assert [token.type for token in tokens] == ['TEXT']
    assert _pattern.unescape(tokens[0].value) == 'a>b c'
    assert _pattern.escape('a>b c') == r'a\>b\ c'

def test_tokenise_offsets():
    tokens = list(tokenise('ab [C]', linenum=3, offset=20))
    assert tokens[2].span == (23, 24)
    assert tokens[2].linenum == 3
    assert tokens[2].column == 3

def test_tokenise_reserved():
    with raises(CompilerError):
        list(tokenise('a ^ b'))

## Parsing
class TestParsePattern:
    def test_elements(self):
        assert parsePattern('abc') == Pattern([Text('abc')])
        assert parsePattern('[C]') == Pattern([CatRef('C')])
        assert parsePattern('[a, [C]]') == Pattern([Category([Text('a'), CatRef('C')])])
        assert parsePattern('[]') == Pattern([Category([])])
        assert parsePattern('%<"') == Pattern([TargetRef(1), TargetRef(-1), Ditto()])

    def test_wildcards(self):
        assert parsePattern('*') == Pattern([Wildcard(True, False)])
        assert parsePattern('*?') == Pattern([Wildcard(False, False)])
        assert parsePattern('**') == Pattern([Wildcard(True, True)])
        assert parsePattern('**?') == Pattern([Wildcard(False, True)])

    def test_optionals(self):
        assert parsePattern('(a)') == Pattern([Optional(Pattern([Text('a')]), True)])
        assert parsePattern('(a)?') == Pattern([Optional(Pattern([Text('a')]), False)])
        assert parsePattern('(*)?') == Pattern([Optional(Pattern([Wildcard(False, False)]), False)])
        assert parsePattern('a(b(c))') == Pattern([
            Text('a'), Optional(Pattern([Text('b'), Optional(Pattern([Text('c')]))]))
        ])

    def test_repeats(self):
        assert parsePattern('a{3}') == Pattern([Text('a'), RepeatN(3)])
        assert parsePattern('[C]{*?}') == Pattern([CatRef('C'), RepeatWild(False, False)])
        assert parsePattern('a{**}') == Pattern([Text('a'), RepeatWild(True, True)])

    def test_placeholder(self):
        assert parsePattern('a_b', placeholder=True) == Pattern([Text('a'), Placeholder(), Text('b')])
        with raises(CompilerError):
            parsePattern('a_b')

    def test_str(self):
        for string in ['abc', '[C]', '[a, [C]]', '(a)?', '*?', '**', 'a{3}', 'a{*?}', '%<"']:
            assert str(parsePattern(string)) == string

    def test_errors(self):
        with raises(CompilerError):
            parsePattern('(a')
        with raises(CompilerError):
            parsePattern('[a')
        with raises(CompilerError):
            parsePattern('{2}')
        with raises(CompilerError):
            parsePattern('a{2}{3}')
        with raises(CompilerError):
            parsePattern('a)')
        with raises(CompilerError):
            parsePattern('('*(_pattern.MAX_DEPTH+1) + 'a' + ')'*(_pattern.MAX_DEPTH+1))

## Matching
class TestMatching:
    def test_literal(self):
        trace = matchPattern(Word('abc'), parsePattern('abc'), 1)
        assert (trace.start, trace.stop) == (1, 4)
        assert [(match.start, match.stop) for match in trace] == [(1, 2), (2, 3), (3, 4)]
        assert all(isinstance(match, SingleMatch) for match in trace)
        assert matchPattern(Word('abc'), parsePattern('abd'), 1) is None
        assert matchPattern(Word('ab'), parsePattern('abc'), 1) is None

    def test_literal_graphs(self):
        word = Word('atshu', ('sh', 'ts', 'tsh'))
        assert matchPattern(word, parsePattern('tsh'), 2).stop == 3
        assert matchPattern(word, parsePattern('ts'), 2) is None

    def test_ditto(self):
        assert matchPattern(Word('abb'), parsePattern('b"'), 2).stop == 4
        assert matchPattern(Word('abc'), parsePattern('b"'), 2) is None
        assert matchPattern(Word('abb'), parsePattern('"'), 2) is None

    def test_category(self, cats):
        trace = matchPattern(Word('kit'), parsePattern('[C][V]'), 1, cats)
        assert trace.stop == 3
        assert isinstance(trace[0], MultipleMatch)
        assert trace.categoryIndices() == [2, 2]
        assert matchPattern(Word('kit'), parsePattern('[V]'), 1, cats) is None
        assert matchPattern(Word('kait'), parsePattern('k[D]'), 1, cats).stop == 4
        assert matchPattern(Word('kit'), parsePattern('[i, k]'), 1, cats).categoryIndices() == [1]

    def test_category_undefined(self):
        with raises(RuleError):
            matchPattern(Word('kit'), parsePattern('[X]'), 1, {})

    def test_null_category(self):
        trace = matchPattern(Word('ab'), parsePattern('[]'), 2)
        assert (trace.start, trace.stop) == (2, 2)

    def test_wildcards(self):
        assert stops('abcd', 'a*', 1) == [5, 4, 3]
        assert stops('abcd', 'a*?', 1) == [3, 4, 5]
        assert stops('ab cd', 'a*', 1) == [3]
        assert stops('ab cd', 'a**', 1) == [7, 6, 5, 4, 3]
        assert matchPattern(Word('abcd'), parsePattern('a*c'), 1).stop == 4

    def test_optionals(self):
        assert stops('abc', 'a(b)', 1) == [3, 2]
        assert stops('abc', 'a(b)?', 1) == [2, 3]
        assert stops('ac', 'a(b)c', 1) == [3]
        assert stops('abc', 'a(*)c', 1) == [4]
        assert stops('ac', 'a(*)c', 1) == [3]

    def test_repeats(self, cats):
        assert stops('aaab', 'a{2}', 1) == [3]
        assert stops('aab', 'a{3}', 1) == []
        assert stops('aaab', 'a{*}', 1) == [4, 3, 2]
        assert stops('aaab', 'a{*?}', 1) == [2, 3, 4]
        assert stops('aa aa', 'a{*}', 1) == [3, 2]
        assert stops('aa aa', '[a, #]{**}', 1) == [7, 6, 5, 4, 3, 2]
        assert matchPattern(Word('ktp'), parsePattern('[C]{*}p'), 1, cats).stop == 4

    def test_target(self):
        word = Word('abab')
        pattern = parsePattern('%')
        assert matchPattern(word, pattern, 3, target=['a', 'b']).stop == 5
        assert matchPattern(word, parsePattern('<'), 2, target=['a', 'b']).stop == 4
        assert matchPattern(word, pattern, 3) is None

    def test_end(self):
        word = Word('abc')
        assert matchPattern(word, parsePattern('*'), 1, end=3).stop == 3
        assert matchPattern(word, parsePattern('a'), 1, end=3) is None
