"""DOCX upload → raw article text."""
import io, logging, zipfile

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from docx.table import Table
from docx.text.paragraph import Paragraph
from lxml.etree import XMLSyntaxError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'docx'}


class IngestionError(Exception):
    """The uploaded document could not be read; the user has to try another file."""


def is_docx(filename):
    return '.' in (filename or '') and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _table_text(table):
    chunks = []
    seen = set()  # merged cells repeat across row.cells
    for row in table.rows:
        for cell in row.cells:
            if cell._tc in seen: continue
            seen.add(cell._tc)
            chunks += [p.text for p in cell.paragraphs if p.text.strip()]
    return chunks


def extract_text(data: bytes) -> str:
    """Paragraphs and table cells in document order, separated by blank lines."""
    if not data:
        raise IngestionError('Empty document')
    try:
        doc = Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, XMLSyntaxError, KeyError, ValueError) as e:
        raise IngestionError(f'Could not read .docx document: {e}') from e

    chunks = []; n_tables = 0
    for child in doc.element.body.iterchildren():
        if child.tag == qn('w:p'):
            text = Paragraph(child, doc).text
            if text.strip(): chunks.append(text)
        elif child.tag == qn('w:tbl'):
            n_tables += 1
            chunks += _table_text(Table(child, doc))
    logger.info('extracted %d text blocks (%d tables)', len(chunks), n_tables)
    return '\n\n'.join(chunks)
