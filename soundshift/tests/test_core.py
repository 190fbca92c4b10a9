import pytest
from pytest import raises
from .. import core
from ..core import FormatError, CompilerError, Token, Cat, Word

## Fixtures
@pytest.fixture
def graphs():
    return ('sh', 'ts', 'tsh')

@pytest.fixture
def categories():
    return {
        'vwl': Cat(['a', 'e', 'i', 'o', 'u'], 'vwl'),
        'cns': Cat(['p', 't', 'k', 's', 'm', 'n', 'r', 'y', 'w'], 'cns'),
    }

## core.Token
def test_Token_iter():
    token = Token('TEST', 'test', 0, 0)
    assert list(token) == ['TEST', 'test']

def test_Token_span():
    token = Token('TEXT', 'abc', 2, 4, 10)
    assert token.span == (10, 13)

def test_CompilerError():
    error = CompilerError('expected `>`', 'b', 0, 2)
    assert error.span == (2, 3)
    assert error.message == 'expected `>`: `b` @ 0:2'

class TestCat:
    def test_Cat(self, categories):
        cat = categories['vwl']
        assert cat.values == [('a',), ('e',), ('i',), ('o',), ('u',)]
        assert cat.name == 'vwl'
        assert str(cat) == '[a, e, i, o, u]'
        assert len(cat) == 5
        assert cat[3] == ('o',)
        assert list(cat) == cat.values
        assert 'e' in cat
        assert ('e',) in cat

    def test_Cat_sequences(self):
        cat = Cat([('a', 'i'), 'a', ('a', 'u')])
        assert ('a', 'i') in cat
        assert ('a',) in cat
        assert 'i' not in cat
        assert (cat - ['a']).values == [('a', 'i'), ('a', 'u')]

    def test_Cat_add_sub(self, categories):
        cat = categories['vwl']
        assert (cat + ['y', 'w']).values == [('a',), ('e',), ('i',), ('o',), ('u',), ('y',), ('w',)]
        assert (cat - ['e', 'o']).values == [('a',), ('i',), ('u',)]
        assert (cat + ['y']).name == 'vwl'
        extended = cat
        extended += ['y']
        assert extended.values[-1] == ('y',)
        assert len(cat) == 5

    def test_Cat_algebra(self, categories):
        cat = categories['cns']
        extra = ['b', 'd', 'g']
        assert ((cat + extra) - extra).values == cat.values
        assert len(cat - ['p', 'x']) <= len(cat)
        assert Cat(extra) == Cat(list(extra), 'other')

class TestWord:
    def test_Word(self):
        word = Word('twine')
        assert word.phones == ['#', 't', 'w', 'i', 'n', 'e', '#']
        assert str(word) == 'twine'
        assert repr(word) == "Word('twine')"
        assert len(word) == 7
        assert word[1] == 't'
        assert word[1:3].phones == ['t', 'w']
        assert 'n' in word
        assert list(word) == word.phones

    def test_Word_graphs(self, graphs):
        word = Word('atshu', graphs, "'")
        assert word.graphs == ('tsh', 'sh', 'ts')
        assert word.phones == ['#', 'a', 'tsh', 'u', '#']

    def test_Word_from_phones(self):
        word = Word(['#', 'a', '', '#', '#', 'b', '#'])
        assert word.phones == ['#', 'a', '#', 'b', '#']
        assert str(word) == 'a b'

    def test_Word_replace(self):
        word = Word('abc')
        new = word.replace(2, 3, ['x', 'y'])
        assert new.phones == ['#', 'a', 'x', 'y', 'c', '#']
        assert word.phones == ['#', 'a', 'b', 'c', '#']
        assert word.replace(2, 2, ['z']).phones == ['#', 'a', 'z', 'b', 'c', '#']
        assert word.replace(1, 4, []).phones == ['#', '#']

def test_sortGraphs():
    assert core.sortGraphs(['a', 'tsh', 'sh', 'a']) == ('tsh', 'sh', 'a')
    with raises(FormatError):
        core.sortGraphs(['a', ''])
    with raises(FormatError):
        core.sortGraphs(['a', None])

def test_parseWord(graphs):
    parseWord = core.parseWord
    assert parseWord('atshu', graphs, "'") == ['#', 'a', 'tsh', 'u', '#']
    assert parseWord("ats'hu", graphs, "'") == ['#', 'a', 'ts', 'h', 'u', '#']
    assert parseWord('a  b') == ['#', 'a', '#', 'b', '#']
    assert parseWord('  a\tb ') == ['#', 'a', '#', 'b', '#']
    assert parseWord('') == ['#', '#']
    assert parseWord("a'b", (), "'") == ['#', 'a', 'b', '#']
    assert parseWord("a'b", ('a', 'b'), "'") == ['#', 'a', 'b', '#']

def test_intoPhones(graphs):
    assert core.intoPhones('tshsh', graphs) == ['tsh', 'sh']
    assert core.intoPhones('', graphs) == []
    assert core.intoPhones("'", graphs, "'") == []

def test_unparseWord(graphs):
    unparseWord = core.unparseWord
    assert unparseWord(['#', 'a', 'tsh', 'u', '#'], graphs, "'") == 'atshu'
    assert unparseWord(['#', 'a', 'ts', 'h', 'u', '#'], graphs, "'") == "ats'hu"
    assert unparseWord(['#', 'a', '#', 'b', '#']) == 'a b'
    assert unparseWord(['#', 'a', 'b', '#'], ('a', 'b'), "'") == 'ab'

@pytest.mark.parametrize('string', ['atshu', "ats'hu", 'tsts hs', "s'h t's'h", 'shtsh'])
def test_round_trip(graphs, string):
    rendered = str(Word(string, graphs, "'"))
    assert str(Word(rendered, graphs, "'")) == rendered
    assert Word(rendered, graphs, "'").phones == Word(string, graphs, "'").phones
