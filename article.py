"""Article metadata record + the AI-suggestion merge."""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from typing import List

# ── WIRE KEYS ────────────────────────────────────────────────
# camelCase keys used by the web client and the Gemini schema
AUTHOR_KEYS = {
    'name': 'name', 'affiliation': 'affiliation', 'email': 'email',
    'orcid': 'orcid', 'country': 'country',
    'surname': 'surname', 'givenNames': 'given_names',
}
METADATA_KEYS = {
    'title': 'title', 'titleEn': 'title_en', 'journal': 'journal',
    'issn': 'issn', 'volume': 'volume', 'issue': 'issue', 'year': 'year',
    'doi': 'doi', 'datePublished': 'date_published',
    'abstract': 'abstract', 'abstractEn': 'abstract_en',
    'keywords': 'keywords', 'keywordsEn': 'keywords_en',
}


def _text(key, value):
    if value is None: return ''
    if not isinstance(value, str):
        raise TypeError(f'{key} must be a string, got {type(value).__name__}')
    return value


@dataclass(frozen=True)
class Author:
    name: str = ''
    affiliation: str = ''
    email: str = ''
    orcid: str = ''
    country: str = ''
    # explicit split; when surname is set the name heuristic is skipped
    surname: str = ''
    given_names: str = ''

    @classmethod
    def from_dict(cls, d):
        if isinstance(d, Author): return d
        if not isinstance(d, dict):
            raise TypeError(f'author must be an object, got {type(d).__name__}')
        return cls(**{attr: _text(key, d.get(key)) for key, attr in AUTHOR_KEYS.items()})

    def to_dict(self):
        return {key: getattr(self, attr) for key, attr in AUTHOR_KEYS.items()}


def _blank_authors():
    return [Author()]


@dataclass(frozen=True)
class Metadata:
    title: str = ''
    title_en: str = ''
    journal: str = ''
    issn: str = ''
    volume: str = ''
    issue: str = ''
    year: str = ''
    doi: str = ''
    date_published: str = ''
    abstract: str = ''
    abstract_en: str = ''
    keywords: str = ''
    keywords_en: str = ''
    authors: List[Author] = field(default_factory=_blank_authors)

    @classmethod
    def from_dict(cls, d) -> 'Metadata':
        """Build a record from a partial camelCase dict; absent keys keep defaults."""
        if not isinstance(d, dict):
            raise TypeError(f'metadata must be an object, got {type(d).__name__}')
        kw = {attr: _text(key, d[key]) for key, attr in METADATA_KEYS.items() if key in d}
        authors = d.get('authors')
        if authors is not None:
            if not isinstance(authors, list):
                raise TypeError(f'authors must be a list, got {type(authors).__name__}')
            kw['authors'] = [Author.from_dict(a) for a in authors] or _blank_authors()
        return cls(**kw)

    def to_dict(self):
        d = {key: getattr(self, attr) for key, attr in METADATA_KEYS.items()}
        d['authors'] = [a.to_dict() for a in self.authors]
        return d

    def missing_fields(self):
        """Fields the editor must fill before the XML is generated."""
        missing = [key for key in ('title', 'journal') if not getattr(self, key).strip()]
        for i, a in enumerate(self.authors, 1):
            for key in ('name', 'affiliation', 'country'):
                if not getattr(a, key).strip():
                    missing.append(f'authors[{i}].{key}')
        return missing


# ── AI MERGE ─────────────────────────────────────────────────
# Precedence per field when overlaying a suggestion onto the current record:
#   scalar text fields : suggestion if non-empty string, else current
#   year               : current if non-empty, else suggestion, else this year
#   authors            : suggestion if non-empty list, else current
#   unknown keys       : ignored
def merge_suggestion(current: Metadata, suggestion: dict, today=None) -> Metadata:
    suggestion = suggestion or {}
    kw = {}
    for key, attr in METADATA_KEYS.items():
        if attr == 'year': continue
        value = suggestion.get(key)
        if isinstance(value, str) and value.strip():
            kw[attr] = value

    suggested_year = suggestion.get('year')
    if current.year:
        kw['year'] = current.year
    elif isinstance(suggested_year, str) and suggested_year.strip():
        kw['year'] = suggested_year.strip()
    else:
        kw['year'] = str((today or datetime.date.today()).year)

    authors = suggestion.get('authors')
    if isinstance(authors, list) and authors:
        kw['authors'] = [_suggested_author(a) for a in authors]
    return replace(current, **kw)


def _suggested_author(a):
    if not isinstance(a, dict): return Author()
    return Author(**{attr: a[key] if isinstance(a.get(key), str) else ''
                     for key, attr in AUTHOR_KEYS.items()})
