import datetime
import xml.etree.ElementTree as ET

import pytest

import converter as cv
from article import Author, Metadata

TODAY = datetime.date(2025, 3, 1)


def parse(xml):
    return ET.fromstring(xml.encode('utf-8'))


def build(md, body='Body text.', **kw):
    kw.setdefault('today', TODAY)
    return cv.build_xml(md, body, **kw)


# ------------------------------------------------------------------
# escaping
# ------------------------------------------------------------------


class TestEscape:
    def test_all_special_characters(self):
        assert cv.xe('a & b < c > d " e \' f') == 'a &amp; b &lt; c &gt; d &quot; e &apos; f'

    def test_ampersand_not_double_escaped(self):
        assert cv.xe('&lt;') == '&amp;lt;'

    def test_empty_and_none(self):
        assert cv.xe('') == ''
        assert cv.xe(None) == ''

    def test_round_trip_through_parser(self):
        nasty = 'Tom & Jerry <b>"quoted"</b> it\'s'
        md = Metadata(title=nasty, authors=[Author(name=nasty, affiliation=nasty, country=nasty)])
        root = parse(build(md, body=nasty))
        assert root.find('.//article-title').text == nasty
        assert root.find('.//institution').text == nasty
        assert root.find('.//country').text == nasty
        assert root.find('.//body/sec/p').text == nasty


# ------------------------------------------------------------------
# country codes
# ------------------------------------------------------------------


class TestCountryCode:
    @pytest.mark.parametrize('name,code', [
        ('Brasil', 'BR'), ('brasil ', 'BR'), ('  BRAZIL', 'BR'),
        ('México', 'MX'), ('España', 'ES'), ('Estados Unidos', 'US'),
        ('república dominicana', 'DO'), ('Portugal', 'PT'),
    ])
    def test_known(self, name, code):
        assert cv.get_country_code(name) == code

    def test_unknown_and_empty(self):
        assert cv.get_country_code('Atlantis') == ''
        assert cv.get_country_code('') == ''
        assert cv.get_country_code(None) == ''

    def test_table_keys_are_normalized(self):
        assert all(k == k.strip().lower() for k in cv.COUNTRY_CODES)
        assert all(len(v) == 2 and v.isupper() for v in cv.COUNTRY_CODES.values())


# ------------------------------------------------------------------
# section builders
# ------------------------------------------------------------------


def test_keywords_trimmed_and_empties_dropped():
    lines = cv.build_keywords('a, b,,c ')
    assert [l.strip() for l in lines] == ['<kwd>a</kwd>', '<kwd>b</kwd>', '<kwd>c</kwd>']


def test_keywords_escaped_once():
    assert cv.build_keywords('R&D')[0].strip() == '<kwd>R&amp;D</kwd>'
    assert cv.build_keywords('') == []


class TestPubDate:
    def test_iso_date_sliced(self):
        assert cv.split_pub_date('2024-07-15', '1999') == ('15', '07', '2024')

    def test_datetime_suffix_ignored(self):
        assert cv.split_pub_date('2024-07-15T10:00:00Z') == ('15', '07', '2024')

    def test_no_calendar_validation(self):
        assert cv.split_pub_date('2024-13-45') == ('45', '13', '2024')

    def test_falls_back_to_year(self):
        assert cv.split_pub_date('', '2021', today=TODAY) == ('', '', '2021')

    def test_falls_back_to_current_year(self):
        assert cv.split_pub_date('', '', today=TODAY) == ('', '', '2025')

    def test_day_and_month_omitted_without_date(self):
        root = parse(build(Metadata(year='2021')))
        pub = root.find('.//pub-date')
        assert pub.find('day') is None and pub.find('month') is None
        assert pub.find('year').text == '2021'

    def test_full_date_emitted(self):
        pub = parse(build(Metadata(date_published='2024-07-15'))).find('.//pub-date')
        assert [pub.find(t).text for t in ('day', 'month', 'year')] == ['15', '07', '2024']


class TestBody:
    def test_newline_runs_split_paragraphs(self):
        lines = cv.build_body('First.\n\n\nSecond <b>.\nThird')
        assert [l.strip() for l in lines] == ['<p>First.</p>', '<p>Second &lt;b&gt;.</p>', '<p>Third</p>']

    def test_empty_chunks_preserved(self):
        lines = cv.build_body('\nText\n')
        assert [l.strip() for l in lines] == ['<p></p>', '<p>Text</p>', '<p></p>']

    def test_internal_whitespace_not_trimmed(self):
        assert cv.build_body('  indented  ')[0].strip() == '<p>  indented  </p>'

    def test_empty_body_is_one_empty_paragraph(self):
        assert [l.strip() for l in cv.build_body('')] == ['<p></p>']


# ------------------------------------------------------------------
# authors / affiliations
# ------------------------------------------------------------------


class TestSplitName:
    def test_last_token_is_surname(self):
        assert cv.split_name('Maria Clara  Silva') == ('Silva', 'Maria Clara')

    def test_single_token(self):
        assert cv.split_name(' Madonna ') == ('Madonna', '')

    def test_empty(self):
        assert cv.split_name('') == ('', '')

    def test_explicit_surname_wins(self):
        a = Author(name='Juan de la Cruz', surname='de la Cruz', given_names='Juan')
        assert cv.author_name(a) == ('de la Cruz', 'Juan')

    def test_custom_splitter(self):
        md = Metadata(authors=[Author(name='Cruz, Juan')])
        splitter = lambda name: tuple(p.strip() for p in name.split(','))
        root = parse(build(md, name_splitter=splitter))
        assert root.find('.//contrib/name/surname').text == 'Cruz'
        assert root.find('.//contrib/name/given-names').text == 'Juan'


class TestOrcid:
    def test_bare_id_gets_base_url(self):
        assert cv.normalize_orcid('0000-0002-1825-009X') == 'https://orcid.org/0000-0002-1825-009X'

    def test_junk_stripped(self):
        assert cv.normalize_orcid('ORCID: 0000 0002 1825 0097') == 'https://orcid.org/0000000218250097'

    def test_url_kept(self):
        url = 'https://orcid.org/0000-0002-1825-0097'
        assert cv.normalize_orcid(url) == url

    def test_blank(self):
        assert cv.normalize_orcid('  ') == ''


def test_contrib_optional_blocks():
    md = Metadata(authors=[
        Author(name='Ana Souza', orcid='0000-0001-2345-6789', email='ana@x.org'),
        Author(name='Luis Perez'),
    ])
    contribs = parse(build(md)).findall('.//contrib')
    assert contribs[0].find('contrib-id').text == 'https://orcid.org/0000-0001-2345-6789'
    assert contribs[0].find('email').text == 'ana@x.org'
    assert contribs[1].find('contrib-id') is None
    assert contribs[1].find('email') is None
    # name block always present, even if empty
    assert contribs[1].find('name/given-names').text == 'Luis'


def test_cross_references_consistent():
    same = Author(name='Ana Souza', affiliation='USP', country='Brasil')
    md = Metadata(authors=[same, same, Author(name='Bo', country='Atlantis')])
    root = parse(build(md))
    contribs = root.findall('.//contrib')
    affs = root.findall('.//aff')
    assert len(contribs) == len(affs) == 3
    for i, (c, a) in enumerate(zip(contribs, affs), 1):
        assert c.find('xref').get('rid') == a.get('id') == f'aff{i}'
        assert c.find('xref').get('ref-type') == 'aff'
        assert a.find('label').text == str(i)


def test_unknown_country_has_no_attribute():
    md = Metadata(authors=[Author(name='X Y', affiliation='Uni', country='Atlantis')])
    country = parse(build(md)).find('.//aff/country')
    assert 'country' not in country.attrib
    assert country.text == 'Atlantis'


# ------------------------------------------------------------------
# document assembly
# ------------------------------------------------------------------


def test_scenario_minimal_record():
    md = Metadata(title='Test', journal='J',
                  authors=[Author(name='Maria Silva', affiliation='UFRJ', country='Brasil')])
    xml = build(md)
    root = parse(xml)

    assert root.tag == 'article'
    assert root.get('specific-use') == 'sps-1.9'
    assert root.get('{http://www.w3.org/XML/1998/namespace}lang') == 'es'
    assert root.find('.//journal-title').text == 'J'
    assert root.find('.//article-title').text == 'Test'

    contribs = root.findall('.//contrib')
    assert len(contribs) == 1
    assert contribs[0].find('name/surname').text == 'Silva'
    assert contribs[0].find('name/given-names').text == 'Maria'
    affs = root.findall('.//aff')
    assert len(affs) == 1
    assert affs[0].find('country').get('country') == 'BR'

    assert root.find('.//trans-title-group') is None
    assert root.find('.//trans-abstract') is None
    assert root.find('.//article-id') is None
    assert '<!-- <article-id pub-id-type="doi">' in xml


def test_translated_blocks_conditional():
    root = parse(build(Metadata(title_en='Foo')))
    groups = root.findall('.//trans-title-group')
    assert len(groups) == 1
    assert groups[0].find('trans-title').text == 'Foo'
    assert root.find('.//trans-abstract') is None
    assert len(root.findall('.//kwd-group')) == 1

    root = parse(build(Metadata(abstract_en='Abs', keywords_en='one, two')))
    assert root.find('.//trans-title-group') is None
    assert root.find('.//trans-abstract/p').text == 'Abs'
    en = [g for g in root.findall('.//kwd-group')
          if g.get('{http://www.w3.org/XML/1998/namespace}lang') == 'en']
    assert [k.text for k in en[0].findall('kwd')] == ['one', 'two']


def test_doi_volume_issue_when_present():
    root = parse(build(Metadata(doi='10.1590/abc', volume='12', issue='3')))
    assert root.find('.//article-id').text == '10.1590/abc'
    assert root.find('.//article-id').get('pub-id-type') == 'doi'
    assert root.find('.//volume').text == '12'
    assert root.find('.//issue').text == '3'

    root = parse(build(Metadata()))
    assert root.find('.//article-meta/volume') is None
    assert root.find('.//article-meta/issue') is None


def test_all_empty_record_still_valid():
    root = parse(build(Metadata(), body=''))
    assert root.find('.//abstract/p').text is None
    assert root.find('.//ref-list/ref').get('id') == 'B1'
    assert root.find('.//fpage').text == '1'


def test_deterministic():
    md = Metadata(title='T', keywords='a,b', authors=[Author(name='A B', country='Chile')])
    assert build(md, body='x\ny') == build(md, body='x\ny')


def test_record_not_mutated():
    md = Metadata(title='T', authors=[Author(name='A B')])
    before = md.to_dict()
    build(md)
    assert md.to_dict() == before


def test_boilerplate_override():
    bp = cv.Boilerplate(journal_id='RBE', publisher_name='SciELO & Co')
    root = parse(build(Metadata(), boilerplate=bp))
    assert root.find('.//journal-id').text == 'RBE'
    assert root.find('.//publisher-name').text == 'SciELO & Co'


def test_boilerplate_from_env():
    bp = cv.Boilerplate.from_env({'JATS_JOURNAL_ID': 'rbe', 'JATS_SUBJECT': '', 'OTHER': 'x'})
    assert bp.journal_id == 'rbe'
    assert bp.subject == cv.DEFAULT_BOILERPLATE.subject


def test_contract_violations():
    with pytest.raises(TypeError):
        cv.build_xml({'title': 'x'}, '')
    with pytest.raises(ValueError):
        cv.build_xml(Metadata(authors=[]), '')


def test_host_failure_becomes_serialization_error(monkeypatch):
    def boom(*args):
        raise MemoryError()
    monkeypatch.setattr(cv, '_assemble', boom)
    with pytest.raises(cv.SerializationError):
        cv.build_xml(Metadata(), '')
