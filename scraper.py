# scraper.py
"""
Catalog scrapers for Drakorkita:
- listing pages (/all with media_type, status, genre or q filters)
- home page sections (updated series, newest movies, genre menu)
- detail pages (/detail/{endpoint})

Every page goes through ResilientFetcher, so listings get the same
direct-then-proxy fallback as the video pipeline.
"""
from httpx import AsyncClient
from bs4 import BeautifulSoup
from urllib.parse import urljoin, urlparse, parse_qs
import logging
import re
from typing import Dict, List, Optional

from errors import CatalogNotFound, InvalidEndpoint
from fetcher import ResilientFetcher, USER_AGENT
from models import DramaCard, DramaDetail, Genre
from url_utils import SLUG_RE, compose_url

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Card titles that are really durations ("1:09:03", "47:04")
DURATION_RE = re.compile(r'^\d{1,2}:\d{2}(:\d{2})?$')
RATING_RE = re.compile(r'^\d\.?\d?$')
QUALITY_MARKERS = ('480p', '720p', '1080p', 'WEB')

# Home page section headings
UPDATED_SERIES_RE = re.compile(r'(update|terbaru).*(series|drama)|(series|drama).*(update|terbaru)', re.I)
NEWEST_MOVIE_RE = re.compile(r'(movie|film).*(terbaru|baru|new)|(terbaru|baru|new).*(movie|film)', re.I)

# Dependency to provide HTTP client
async def get_http_client():
    client = AsyncClient(
        headers={
            "User-Agent": USER_AGENT
        },
        timeout=20.0,
        follow_redirects=True  # Explicitly enable redirect following
    )
    try:
        yield client
    finally:
        await client.aclose()

def validate_slug(value: str, what: str = "endpoint") -> str:
    value = (value or '').strip()
    if not value or not SLUG_RE.match(value):
        raise InvalidEndpoint(f"{what.capitalize()} cannot be empty or invalid")
    return value

def slug_from_href(href: str) -> str:
    """'/detail/positively-yours-2026-eot/' -> 'positively-yours-2026-eot'"""
    return urlparse(href).path.rstrip('/').split('/')[-1]

def title_from_slug(slug: str) -> str:
    """'positively-yours-2026-eot' -> 'Positively Yours 2026' (drops the random suffix)"""
    parts = slug.split('-')
    if len(parts) >= 2 and len(parts[-1]) <= 5 and parts[-1].isalnum() and not parts[-1].isdigit():
        parts = parts[:-1]
    return ' '.join(parts).title()

def _image_src(img, base_url: str) -> Optional[str]:
    if not img:
        return None
    src = img.get('data-src') or img.get('src')
    if not src:
        return None
    if src.startswith('//'):
        return 'https:' + src
    return urljoin(base_url + '/', src)

def _card_title(card) -> str:
    title_el = card.select_one('.title, h3, h4, .name, .tt')
    if title_el:
        title = title_el.get_text(strip=True)
        if title and not DURATION_RE.match(title):
            return title

    # Fallback: first text that is not a duration, rating, episode label or quality tag
    for text in card.stripped_strings:
        if (len(text) > 5
                and not DURATION_RE.match(text)
                and not text.replace('.', '').isdigit()
                and not text.startswith('E')
                and not any(marker in text for marker in QUALITY_MARKERS)):
            return text
    return ''

# Helper function to parse drama cards from a BeautifulSoup object
def parse_cards(soup, base_url: str) -> List[DramaCard]:
    results = []
    seen = set()

    for card in soup.select("a[href*='/detail/']"):
        href = card.get('href', '')
        endpoint = slug_from_href(href)
        if not endpoint or endpoint in seen:
            continue

        texts = list(card.stripped_strings)
        rating = next((t for t in reversed(texts) if RATING_RE.match(t) and float(t) <= 10), None)
        episode_info = next((t for t in texts if t.startswith('E') and ('/' in t or 'END' in t)), None)

        item_data = {
            'title': _card_title(card) or title_from_slug(endpoint),
            'endpoint': endpoint,
            'url': href if href.startswith('http') else urljoin(base_url + '/', href),
            'image': _image_src(card.select_one('img'), base_url),
            'rating': rating,
            'episode_info': episode_info,
        }

        try:
            results.append(DramaCard(**item_data))
            seen.add(endpoint)
        except Exception as e:
            logger.error(f"Failed to create DramaCard object for {item_data['title']}: {e}")
            continue

    return results

def parse_genres(soup) -> List[Genre]:
    genres = []
    seen = set()
    for link in soup.select("a[href*='genre=']"):
        values = parse_qs(urlparse(link.get('href', '')).query).get('genre')
        name = link.get_text(strip=True)
        if not values or not name or values[0] in seen:
            continue
        seen.add(values[0])
        genres.append(Genre(name=name, endpoint=values[0]))
    return genres

def parse_home_section(soup, heading_re: re.Pattern, base_url: str) -> List[DramaCard]:
    """Cards of the first home page block whose heading matches `heading_re`."""
    for heading in soup.find_all(['h1', 'h2', 'h3', 'h4']):
        if not heading_re.search(heading.get_text(' ', strip=True)):
            continue
        container = heading.find_parent(['section', 'div'])
        while container is not None:
            cards = parse_cards(container, base_url)
            if cards:
                return cards
            container = container.find_parent(['section', 'div'])
    return []

def _info_fields(soup) -> Dict[str, str]:
    fields = {}
    rows = [li.get_text(' ', strip=True) for li in soup.select('.anf li')]
    if not rows:
        rows = [span.get_text(' ', strip=True) for span in soup.select('span')]
    for text in rows:
        if ' : ' not in text or len(text) >= 150:
            continue
        key, _, value = text.partition(' : ')
        key = key.strip().lower().replace(' ', '_')
        value = value.strip()
        if key and value and key not in ('sinopsis', 'informasi') and key not in fields:
            fields[key] = value
    return fields

def _link_texts(area, query_key: str) -> List[str]:
    values = []
    for link in area.select(f"a[href*='{query_key}=']"):
        text = link.get_text(strip=True)
        if text and text not in values:
            values.append(text)
    return values

# Helper function to parse a detail page
def parse_detail(soup, endpoint: str, base_url: str) -> DramaDetail:
    headline = soup.select_one('h1[itemprop="headline"]')
    if headline:
        title = headline.get_text(strip=True)
    else:
        # The first h1 is usually the site name
        all_h1 = soup.select('h1')
        title = all_h1[1 if len(all_h1) > 1 else 0].get_text(strip=True) if all_h1 else ''

    for prefix in ('Nonton ', 'Download '):
        if title.startswith(prefix):
            title = title[len(prefix):]
    title = re.sub(r'\s*Subtitle Indonesia\s*$', '', title).strip() or title_from_slug(endpoint)

    alter = soup.select_one('span.alter')
    poster = soup.select_one('.thumb img') or soup.select_one(".poster img, img[itemprop='image']")

    synopsis_tag = soup.select_one('.desc, .sinopsis')
    synopsis = synopsis_tag.get_text(strip=True) if synopsis_tag else None
    if not synopsis:
        meta = soup.find('meta', attrs={'name': 'description'})
        synopsis = meta.get('content') if meta else None

    info = _info_fields(soup)

    genre_area = soup.select_one('.gnr')
    if genre_area:
        genres = [a.get_text(strip=True) for a in genre_area.select('a') if a.get_text(strip=True)]
    else:
        genres = _link_texts(soup.select_one('.infox, .detail-content') or soup, 'genre')

    people_area = soup.select_one('.desc-wrap') or soup.select_one('.infox') or soup
    # Fix merged text: "Choi Jin-hyukas Kang Du-jun" -> "Choi Jin-hyuk as Kang Du-jun"
    cast = [re.sub(r'(\w)(as )([A-Z])', r'\1 as \3', name) for name in _link_texts(people_area, 'cast')]
    if not cast and info.get('stars'):
        cast = [part.strip() for part in info['stars'].split(',') if part.strip()]
    directors = _link_texts(people_area, 'crew') or ([info['director']] if info.get('director') else [])
    countries = _link_texts(people_area, 'country') or ([info['country']] if info.get('country') else [])

    score = None
    score_text = soup.find(string=re.compile(r'Score\s*:', re.I))
    if score_text and score_text.find_parent():
        match = re.search(r'\d+(\.\d+)?', score_text.find_parent().get_text(strip=True))
        score = match.group(0) if match else None

    return DramaDetail(
        title=title,
        endpoint=endpoint,
        url=compose_url(base_url, f"/detail/{endpoint}"),
        alternative_title=alter.get_text(strip=True) if alter else None,
        image=_image_src(poster, base_url),
        synopsis=synopsis,
        type=info.get('type'),
        status=info.get('status'),
        episode_count=info.get('episode_count') or info.get('episode'),
        first_air_date=info.get('first_air_date'),
        score=score,
        genres=genres,
        cast=cast,
        directors=directors,
        countries=countries,
        info=info,
    )

# Helper function to fetch and parse a single page
async def fetch_soup(url: str, fetcher: ResilientFetcher) -> BeautifulSoup:
    logger.info(f"Scraping URL: {url}")
    result = await fetcher.fetch(url)
    return BeautifulSoup(result.text, 'html.parser')

# Function to scrape an /all listing page
async def scrape_listing(fetcher: ResilientFetcher, base_url: str, filters: Dict[str, str], page: int = 1) -> List[DramaCard]:
    if page < 1:
        raise InvalidEndpoint("Page must be a positive integer")

    url = compose_url(base_url, "/all", {**filters, "page": page})
    soup = await fetch_soup(url, fetcher)
    cards = parse_cards(soup, base_url)
    if not cards:
        logger.warning(f"No titles found on {url}")
        raise CatalogNotFound(f"No titles found on page {page}")
    logger.info(f"Scraped {len(cards)} titles from {url}")
    return cards

async def scrape_series(fetcher: ResilientFetcher, base_url: str, page: int = 1) -> List[DramaCard]:
    return await scrape_listing(fetcher, base_url, {"media_type": "tv"}, page)

async def scrape_movies(fetcher: ResilientFetcher, base_url: str, page: int = 1) -> List[DramaCard]:
    return await scrape_listing(fetcher, base_url, {"media_type": "movie"}, page)

async def scrape_ongoing_series(fetcher: ResilientFetcher, base_url: str, page: int = 1) -> List[DramaCard]:
    return await scrape_listing(fetcher, base_url, {"status": "returning"}, page)

async def scrape_completed_series(fetcher: ResilientFetcher, base_url: str, page: int = 1) -> List[DramaCard]:
    return await scrape_listing(fetcher, base_url, {"status": "ended"}, page)

async def scrape_genre(fetcher: ResilientFetcher, base_url: str, genre: str, page: int = 1) -> List[DramaCard]:
    return await scrape_listing(fetcher, base_url, {"genre": validate_slug(genre, "genre")}, page)

async def scrape_search(fetcher: ResilientFetcher, base_url: str, keyword: str, page: int = 1) -> List[DramaCard]:
    keyword = (keyword or '').strip()
    if not keyword:
        raise InvalidEndpoint("Search query cannot be empty")
    return await scrape_listing(fetcher, base_url, {"q": keyword}, page)

async def scrape_updated_series(fetcher: ResilientFetcher, base_url: str) -> List[DramaCard]:
    soup = await fetch_soup(compose_url(base_url), fetcher)
    cards = parse_home_section(soup, UPDATED_SERIES_RE, base_url)
    if not cards:
        raise CatalogNotFound("No updated series found on the home page")
    return cards

async def scrape_newest_movies(fetcher: ResilientFetcher, base_url: str) -> List[DramaCard]:
    soup = await fetch_soup(compose_url(base_url), fetcher)
    cards = parse_home_section(soup, NEWEST_MOVIE_RE, base_url)
    if not cards:
        raise CatalogNotFound("No new movies found on the home page")
    return cards

async def scrape_genres(fetcher: ResilientFetcher, base_url: str) -> List[Genre]:
    soup = await fetch_soup(compose_url(base_url), fetcher)
    genres = parse_genres(soup)
    if not genres:
        raise CatalogNotFound("No genres found on the home page")
    logger.info(f"Scraped {len(genres)} genres")
    return genres

async def scrape_detail(fetcher: ResilientFetcher, base_url: str, endpoint: str) -> DramaDetail:
    endpoint = validate_slug(endpoint)
    soup = await fetch_soup(compose_url(base_url, f"/detail/{endpoint}"), fetcher)
    return parse_detail(soup, endpoint, base_url)
