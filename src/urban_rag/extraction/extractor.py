"""
Fetch a URL and turn it into plain text.

Format dispatch is by URL shape: a .pdf suffix goes through pypdf, the
normattiva.it domain and any other page go through BeautifulSoup with their
own container selectors. Malformed input yields (possibly empty) text; only
network and HTTP failures raise.
"""

import io
import requests
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, unquote
from bs4 import BeautifulSoup
from pypdf import PdfReader

from urban_rag.errors import ExtractionError
from urban_rag.models.document import DocumentType
from urban_rag.utils.logger import get_logger

logger = get_logger("extraction")

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
DEFAULT_MIN_SELECTOR_LENGTH = 100

WEB_SELECTORS = ['main', 'article', '.content', '.main-content', 'body']
NORMATTIVA_SELECTORS = [
  '.art-content',
  '.articolo-content',
  '.norma-content',
  'article',
  '.content',
  'main'
]


@dataclass
class ExtractedContent:
  title: str
  content: str
  document_type: DocumentType


def detect_document_type(url: str) -> DocumentType:
  """Pick the extraction routine from the URL shape"""
  parsed = urlparse(url)
  if url.lower().endswith('.pdf') or parsed.path.lower().endswith('.pdf'):
    return DocumentType.PDF
  if 'normattiva.it' in parsed.netloc.lower():
    return DocumentType.NORMATTIVA
  return DocumentType.WEB


def pdf_title_from_url(url: str) -> str:
  basename = unquote(urlparse(url).path.rstrip('/').split('/')[-1])
  if basename.lower().endswith('.pdf'):
    basename = basename[:-4]
  return basename or 'PDF Document'


def extract_pdf_text(data: bytes) -> str:
  """Text of every page joined by newlines, empty for unreadable PDFs"""
  try:
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
  except Exception as e:
    logger.warning(f"⚠ unreadable PDF ({len(data)} bytes): {e}")
    return ""
  return "\n".join(pages)


def pdf_title(url: str, text: str) -> str:
  """First line of the text when it looks like a title, else the file name"""
  title = pdf_title_from_url(url)
  if len(text) > 100:
    first_line = text.strip().split('\n')[0].strip()
    if 10 < len(first_line) < 200:
      title = first_line
  return title


def select_text(soup: BeautifulSoup, selectors: List[str], min_length: int) -> str:
  """Text of the first selector whose matches hold more than min_length characters"""
  for selector in selectors:
    elements = soup.select(selector)
    if not elements:
      continue
    text = ' '.join(el.get_text(separator=' ', strip=True) for el in elements).strip()
    if len(text) > min_length:
      return text
  return ""


def parse_html(html: str, document_type: DocumentType, min_length: int = DEFAULT_MIN_SELECTOR_LENGTH) -> ExtractedContent:
  """Title and main text of a web or normattiva page"""
  soup = BeautifulSoup(html or "", "html5lib")
  for tag in soup(['script', 'style', 'noscript']):
    tag.decompose()

  page_title = soup.title.get_text(strip=True) if soup.title else ""

  if document_type == DocumentType.NORMATTIVA:
    title = page_title or 'Normattiva Document'
    content = select_text(soup, NORMATTIVA_SELECTORS, min_length)
  else:
    h1 = soup.find('h1')
    title = page_title or (h1.get_text(strip=True) if h1 else "") or 'Web Document'
    content = select_text(soup, WEB_SELECTORS, min_length)

  return ExtractedContent(title=title, content=content, document_type=document_type)


class ContentExtractor:
  """HTTP fetch plus format-specific text extraction"""

  def __init__(
      self,
      session: Optional[requests.Session] = None,
      timeout: float = DEFAULT_TIMEOUT_SECONDS,
      user_agent: str = DEFAULT_USER_AGENT,
      min_selector_length: int = DEFAULT_MIN_SELECTOR_LENGTH):
    self.session = session or requests.Session()
    self.timeout = timeout
    self.user_agent = user_agent
    self.min_selector_length = min_selector_length

  @classmethod
  def from_config(cls, config: Dict[str, Any], session: Optional[requests.Session] = None) -> 'ContentExtractor':
    extraction = config.get('extraction', {})
    return cls(
      session = session,
      timeout = extraction.get('timeout_seconds', DEFAULT_TIMEOUT_SECONDS),
      user_agent = extraction.get('user_agent', DEFAULT_USER_AGENT),
      min_selector_length = extraction.get('min_selector_length', DEFAULT_MIN_SELECTOR_LENGTH)
    )

  def _get(self, url: str) -> requests.Response:
    try:
      response = self.session.get(
        url,
        timeout = self.timeout,
        headers = {'User-Agent': self.user_agent}
      )
      response.raise_for_status()
    except requests.RequestException as e:
      raise ExtractionError(f"Failed to fetch {url}: {e}") from e
    return response

  def fetch(self, url: str) -> ExtractedContent:
    """Download url and extract its title and raw text"""
    document_type = detect_document_type(url)
    logger.info(f"Fetching {document_type.value} document: {url}")
    response = self._get(url)

    if document_type == DocumentType.PDF:
      text = extract_pdf_text(response.content)
      return ExtractedContent(title=pdf_title(url, text), content=text, document_type=document_type)

    # Browsers treat charset=iso-8859-1 as Windows-1252
    if response.encoding and response.encoding.upper() == 'ISO-8859-1':
      response.encoding = 'windows-1252'
    return parse_html(response.text, document_type, self.min_selector_length)
