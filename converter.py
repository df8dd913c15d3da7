#!/usr/bin/env python3
"""Article metadata + body text → JATS XML (SciELO Publishing Schema 1.9)
Features:
  - XML escaping of every caller-supplied value
  - Country name (ES/PT/EN) → ISO 3166 alpha-2 attribute
  - contrib-group ↔ aff cross-linked by author position
  - Bilingual title / abstract / keywords (original + English)
  - Editable boilerplate (journal-id, publisher, license, placeholder ref)
"""
import sys, os, re, json, datetime
from dataclasses import dataclass, field, replace

from article import Metadata, merge_suggestion

OUTPUT_FILENAME = 'article_JATS_SPS.xml'
OUTPUT_MIMETYPE = 'application/xml;charset=utf-8'
ORCID_BASE = 'https://orcid.org/'


class SerializationError(Exception):
    """The document could not be assembled (host-level failure, not bad data)."""


# ── ESCAPING ─────────────────────────────────────────────────
def xe(t):
    if not t: return ''
    return (str(t).replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')
            .replace('"', '&quot;').replace("'", '&apos;'))


# ── COUNTRY CODES ────────────────────────────────────────────
COUNTRY_CODES = {
    'argentina': 'AR',
    'bolivia': 'BO', 'bolívia': 'BO',
    'brasil': 'BR', 'brazil': 'BR',
    'chile': 'CL',
    'colombia': 'CO', 'colômbia': 'CO',
    'costa rica': 'CR',
    'cuba': 'CU',
    'ecuador': 'EC', 'equador': 'EC',
    'el salvador': 'SV',
    'españa': 'ES', 'espana': 'ES', 'espanha': 'ES', 'spain': 'ES',
    'estados unidos': 'US', 'united states': 'US', 'united states of america': 'US',
    'usa': 'US', 'eua': 'US', 'eeuu': 'US', 'ee.uu.': 'US',
    'guatemala': 'GT',
    'honduras': 'HN',
    'méxico': 'MX', 'mexico': 'MX',
    'nicaragua': 'NI',
    'panamá': 'PA', 'panama': 'PA',
    'paraguay': 'PY', 'paraguai': 'PY',
    'perú': 'PE', 'peru': 'PE',
    'portugal': 'PT',
    'puerto rico': 'PR', 'porto rico': 'PR',
    'república dominicana': 'DO', 'republica dominicana': 'DO', 'dominican republic': 'DO',
    'uruguay': 'UY', 'uruguai': 'UY',
    'venezuela': 'VE',
}

def get_country_code(country_name):
    if not country_name: return ''
    return COUNTRY_CODES.get(country_name.strip().lower(), '')


# ── BOILERPLATE ──────────────────────────────────────────────
@dataclass(frozen=True)
class PlaceholderRef:
    mixed_citation: str = 'Author, A. Article title. Journal Title. 2024;10(2):100-110.'
    surname: str = 'Author'
    given_names: str = 'A.'
    article_title: str = 'Article title'
    source: str = 'Journal Title'
    year: str = '2024'
    volume: str = '10'
    issue: str = '2'
    fpage: str = '100'
    lpage: str = '110'


@dataclass(frozen=True)
class Boilerplate:
    """Stand-in content emitted on every document; editors replace it by hand."""
    journal_id: str = 'YOUR-JOURNAL-ID'
    abbrev_journal_title: str = 'Your J. Abbrev.'
    publisher_name: str = 'Your Publisher Name'
    subject: str = 'Artículos'
    doi_placeholder: str = '10.1590/0000-0000000000000'
    fpage: str = '1'
    lpage: str = '10'
    license_url: str = 'http://creativecommons.org/licenses/by/4.0/'
    license_text: str = ('This is an Open Access article distributed under the terms of the '
                         'Creative Commons Attribution License, which permits unrestricted use, '
                         'distribution, and reproduction in any medium, provided the original '
                         'work is properly cited.')
    abstract_title: str = 'Resumen'
    abstract_title_en: str = 'Abstract'
    keywords_title: str = 'Palabras clave'
    keywords_title_en: str = 'Keywords'
    body_title: str = 'Introducción'
    refs_title: str = 'Referencias'
    reference: PlaceholderRef = field(default_factory=PlaceholderRef)

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(**{attr: env[var] for var, attr in ENV_OVERRIDES.items() if env.get(var)})

ENV_OVERRIDES = {
    'JATS_JOURNAL_ID': 'journal_id',
    'JATS_ABBREV_TITLE': 'abbrev_journal_title',
    'JATS_PUBLISHER_NAME': 'publisher_name',
    'JATS_SUBJECT': 'subject',
    'JATS_LICENSE_URL': 'license_url',
}
DEFAULT_BOILERPLATE = Boilerplate()


# ── AUTHORS ──────────────────────────────────────────────────
def split_name(name):
    """'Maria da Silva' → ('Silva', 'Maria da'). Last token is taken as surname."""
    parts = (name or '').split()
    if not parts: return '', ''
    if len(parts) == 1: return parts[0], ''
    return parts[-1], ' '.join(parts[:-1])

def author_name(author, name_splitter=split_name):
    if author.surname.strip(): return author.surname, author.given_names
    return name_splitter(author.name)

def normalize_orcid(orcid):
    orcid = (orcid or '').strip()
    if not orcid: return ''
    if re.match(r'^[a-z][a-z0-9+.\-]*://', orcid, re.I): return orcid
    return ORCID_BASE + re.sub(r'[^0-9X\-]', '', orcid, flags=re.I)

def aff_id(i):
    return f'aff{i}'

def build_contribs(authors, name_splitter=split_name):
    L = []
    for i, auth in enumerate(authors, 1):
        surname, given = author_name(auth, name_splitter)
        orcid = normalize_orcid(auth.orcid)
        L.append('        <contrib contrib-type="author">')
        if orcid: L.append(f'          <contrib-id contrib-id-type="orcid">{xe(orcid)}</contrib-id>')
        L += ['          <name>',
              f'            <surname>{xe(surname)}</surname>',
              f'            <given-names>{xe(given)}</given-names>',
              '          </name>']
        if auth.email: L.append(f'          <email>{xe(auth.email)}</email>')
        L += [f'          <xref ref-type="aff" rid="{aff_id(i)}"/>',
              '        </contrib>']
    return L

def build_affs(authors):
    L = []
    for i, auth in enumerate(authors, 1):
        code = get_country_code(auth.country)
        country_attr = f' country="{xe(code)}"' if code else ''
        L += [f'      <aff id="{aff_id(i)}">',
              f'        <label>{i}</label>',
              f'        <institution content-type="original">{xe(auth.affiliation)}</institution>',
              f'        <country{country_attr}>{xe(auth.country)}</country>',
              '      </aff>']
    return L


# ── SECTIONS ─────────────────────────────────────────────────
def build_keywords(text):
    kws = [k.strip() for k in (text or '').split(',')]
    return [f'        <kwd>{xe(kw)}</kwd>' for kw in kws if kw]

def split_pub_date(date_published, year='', today=None):
    """ISO 'YYYY-MM-DD' → (day, month, year) as raw slices; no calendar check."""
    if date_published:
        d = date_published[:10]
        return d[8:10], d[5:7], d[0:4]
    return '', '', year or str((today or datetime.date.today()).year)

def build_body(text):
    # empty chunks (leading/trailing newlines) are kept as empty paragraphs
    return [f'      <p>{xe(chunk)}</p>' for chunk in re.split(r'\n+', text or '')]


# ── XML BUILDER ──────────────────────────────────────────────
def build_xml(md, body_text, name_splitter=split_name, boilerplate=DEFAULT_BOILERPLATE, today=None):
    if not isinstance(md, Metadata):
        raise TypeError(f'expected Metadata, got {type(md).__name__}')
    if not md.authors:
        raise ValueError('metadata needs at least one author')
    try:
        return '\n'.join(_assemble(md, body_text, name_splitter, boilerplate, today))
    except (MemoryError, RecursionError) as e:
        raise SerializationError(f'could not assemble XML: {e!r}') from e

def _assemble(md, body_text, name_splitter, bp, today):
    day, month, year = split_pub_date(md.date_published, md.year, today)
    ref = bp.reference

    L = ['<?xml version="1.0" encoding="UTF-8"?>',
         '<!DOCTYPE article PUBLIC "-//NLM//DTD JATS (Z39.96) Journal Publishing DTD v1.1 20151215//EN"'
         ' "https://jats.nlm.nih.gov/publishing/1.1/JATS-journalpublishing1.dtd">',
         '<article dtd-version="1.1" specific-use="sps-1.9" article-type="research-article"'
         ' xml:lang="es" xmlns:xlink="http://www.w3.org/1999/xlink">',
         '  <front>']

    # journal-meta
    L += ['    <journal-meta>',
          f'      <journal-id journal-id-type="publisher-id">{xe(bp.journal_id)}</journal-id>',
          '      <journal-title-group>',
          f'        <journal-title>{xe(md.journal)}</journal-title>',
          f'        <abbrev-journal-title abbrev-type="publisher">{xe(bp.abbrev_journal_title)}</abbrev-journal-title>',
          '      </journal-title-group>',
          f'      <issn pub-type="epub">{xe(md.issn)}</issn>',
          '      <publisher>',
          f'        <publisher-name>{xe(bp.publisher_name)}</publisher-name>',
          '      </publisher>',
          '    </journal-meta>']

    # article-meta
    L.append('    <article-meta>')
    if md.doi: L.append(f'      <article-id pub-id-type="doi">{xe(md.doi)}</article-id>')
    else: L.append(f'      <!-- <article-id pub-id-type="doi">{xe(bp.doi_placeholder)}</article-id> -->')
    L += ['      <article-categories>',
          '        <subj-group subj-group-type="heading">',
          f'          <subject>{xe(bp.subject)}</subject>',
          '        </subj-group>',
          '      </article-categories>',
          '      <title-group>',
          f'        <article-title>{xe(md.title)}</article-title>']
    if md.title_en:
        L += ['        <trans-title-group xml:lang="en">',
              f'          <trans-title>{xe(md.title_en)}</trans-title>',
              '        </trans-title-group>']
    L.append('      </title-group>')

    L.append('      <contrib-group>')
    L += build_contribs(md.authors, name_splitter)
    L.append('      </contrib-group>')
    L += build_affs(md.authors)

    L.append('      <pub-date date-type="pub" publication-format="electronic">')
    if day: L.append(f'        <day>{xe(day)}</day>')
    if month: L.append(f'        <month>{xe(month)}</month>')
    L += [f'        <year>{xe(year)}</year>', '      </pub-date>']
    if md.volume: L.append(f'      <volume>{xe(md.volume)}</volume>')
    if md.issue: L.append(f'      <issue>{xe(md.issue)}</issue>')
    L += [f'      <fpage>{xe(bp.fpage)}</fpage>',
          f'      <lpage>{xe(bp.lpage)}</lpage>']

    # permissions
    L += ['      <permissions>',
          f'        <license license-type="open-access" xlink:href="{xe(bp.license_url)}" xml:lang="en">',
          f'          <license-p>{xe(bp.license_text)}</license-p>',
          '        </license>',
          '      </permissions>']

    # abstracts
    L += ['      <abstract>',
          f'        <title>{xe(bp.abstract_title)}</title>',
          f'        <p>{xe(md.abstract)}</p>',
          '      </abstract>']
    if md.abstract_en:
        L += ['      <trans-abstract xml:lang="en">',
              f'        <title>{xe(bp.abstract_title_en)}</title>',
              f'        <p>{xe(md.abstract_en)}</p>',
              '      </trans-abstract>']

    # keywords
    L += ['      <kwd-group xml:lang="es">',
          f'        <title>{xe(bp.keywords_title)}</title>']
    L += build_keywords(md.keywords)
    L.append('      </kwd-group>')
    if md.keywords_en:
        L += ['      <kwd-group xml:lang="en">',
              f'        <title>{xe(bp.keywords_title_en)}</title>']
        L += build_keywords(md.keywords_en)
        L.append('      </kwd-group>')
    L += ['    </article-meta>', '  </front>']

    # ── BODY ──
    L += ['  <body>',
          '    <sec sec-type="intro">',
          f'      <title>{xe(bp.body_title)}</title>']
    L += build_body(body_text)
    L += ['    </sec>', '  </body>']

    # ── BACK ──
    L += ['  <back>',
          '    <ref-list>',
          f'      <title>{xe(bp.refs_title)}</title>',
          '      <ref id="B1">',
          '        <label>1</label>',
          f'        <mixed-citation>{xe(ref.mixed_citation)}</mixed-citation>',
          '        <element-citation publication-type="journal">',
          '          <person-group person-group-type="author">',
          '            <name>',
          f'              <surname>{xe(ref.surname)}</surname>',
          f'              <given-names>{xe(ref.given_names)}</given-names>',
          '            </name>',
          '          </person-group>',
          f'          <article-title>{xe(ref.article_title)}</article-title>',
          f'          <source>{xe(ref.source)}</source>',
          f'          <year>{xe(ref.year)}</year>',
          f'          <volume>{xe(ref.volume)}</volume>',
          f'          <issue>{xe(ref.issue)}</issue>',
          f'          <fpage>{xe(ref.fpage)}</fpage>',
          f'          <lpage>{xe(ref.lpage)}</lpage>',
          '        </element-citation>',
          '      </ref>',
          '    </ref-list>',
          '  </back>',
          '</article>']
    return L


# ── CLI ──────────────────────────────────────────────────────
CLI_FIELDS = {'journal': 'journal', 'issn': 'issn', 'volume': 'volume', 'issue': 'issue',
              'year': 'year', 'date': 'date_published', 'doi': 'doi'}

def main(argv=None):
    import argparse
    from dotenv import load_dotenv
    import ingest, gemini

    ap = argparse.ArgumentParser(description='DOCX → JATS XML (SciELO SPS 1.9)')
    ap.add_argument('input'); ap.add_argument('-o', '--output')
    ap.add_argument('--metadata', help='JSON file with metadata fields (camelCase keys)')
    ap.add_argument('--no-ai', action='store_true', help='skip Gemini metadata suggestion')
    for flag in CLI_FIELDS: ap.add_argument(f'--{flag}')
    args = ap.parse_args(argv)
    load_dotenv()

    print(f"📄 Reading: {args.input}", file=sys.stderr)
    try:
        with open(args.input, 'rb') as f: text = ingest.extract_text(f.read())
    except (OSError, ingest.IngestionError) as e:
        print(f"❌ {e}", file=sys.stderr); return 1

    md = Metadata()
    if not args.no_ai:
        print("🤖 Extracting metadata with Gemini...", file=sys.stderr)
        try:
            md = merge_suggestion(md, gemini.suggest_metadata(text))
        except gemini.SuggestionError as e:
            print(f"⚠️  {e}", file=sys.stderr)
    if args.metadata:
        try:
            with open(args.metadata, encoding='utf-8') as f:
                md = Metadata.from_dict({**md.to_dict(), **json.load(f)})
        except (OSError, ValueError, TypeError) as e:
            print(f"❌ Invalid metadata file {args.metadata}: {e}", file=sys.stderr); return 1
    md = replace(md, **{attr: getattr(args, flag) for flag, attr in CLI_FIELDS.items()
                        if getattr(args, flag) is not None})

    missing = md.missing_fields()
    if missing: print(f"⚠️  Missing fields: {', '.join(missing)}", file=sys.stderr)

    try:
        xml = build_xml(md, text, boilerplate=Boilerplate.from_env())
    except SerializationError as e:
        print(f"❌ {e}", file=sys.stderr); return 1
    out = args.output or os.path.join(os.path.dirname(os.path.abspath(args.input)), OUTPUT_FILENAME)
    with open(out, 'w', encoding='utf-8') as f: f.write(xml)
    print(f"\n✅ {out} ({len(xml)/1024:.1f} KB | {len(md.authors)} authors)", file=sys.stderr)
    return 0

if __name__ == '__main__':
    sys.exit(main())
