import asyncio
import re
from typing import Any, Dict, List
from urllib.parse import urlparse

from pydantic import ValidationError
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.by import By

from app.features.diagnostic.errors import StageError
from app.features.diagnostic.models.analysis import Stage
from app.features.diagnostic.schemas.payloads import ContentPayload
from app.platform.config import Settings
from app.platform.logger import get_logger

logger = get_logger(__name__)

# (label, pattern matched against script src + inline body)
MARKETING_SIGNATURES = [
    ("analytics", "Google Analytics", re.compile(r"google-analytics\.com|ga\.js|gtag")),
    ("gtm", "Google Tag Manager", re.compile(r"googletagmanager\.com/gtm\.js")),
    ("pixel", "Meta Pixel", re.compile(r"connect\.facebook\.net/.*/fbevents\.js")),
]


class ContentCollector:
    """
    Renders the target page in headless Chrome and extracts its structure.

    Selenium is blocking, so the whole browser session runs in a worker thread
    and the event loop stays free for other runs.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    async def collect(self, target_url: str) -> ContentPayload:
        logger.info(f"Starting content collection for {target_url}")
        raw = await asyncio.to_thread(self._scrape, target_url)
        try:
            return ContentPayload.model_validate(raw)
        except ValidationError as e:
            raise StageError(Stage.content, f"Collected content for {target_url} is malformed") from e

    def build_driver(self) -> webdriver.Chrome:
        chrome_options = Options()
        chrome_options.add_argument('--headless=new')
        chrome_options.add_argument('--no-sandbox')
        chrome_options.add_argument('--disable-dev-shm-usage')
        chrome_options.add_argument(
            f'--window-size={self.settings.SCRAPER_VIEWPORT_WIDTH},{self.settings.SCRAPER_VIEWPORT_HEIGHT}'
        )

        if self.settings.CHROMEDRIVER_PATH:
            driver_service = Service(executable_path=self.settings.CHROMEDRIVER_PATH)
            return webdriver.Chrome(service=driver_service, options=chrome_options)
        return webdriver.Chrome(options=chrome_options)

    def _scrape(self, url: str) -> Dict[str, Any]:
        driver = None
        try:
            driver = self.build_driver()
            driver.set_page_load_timeout(self.settings.SCRAPER_NAVIGATION_TIMEOUT_SECONDS)
            logger.info(f"Navigating to {url}")
            driver.get(url)
            data = self.extract_page(driver)
            data["url"] = url
            return data
        except TimeoutException as e:
            raise StageError(
                Stage.content,
                f"Failed to analyze site {url}: navigation timed out "
                f"after {self.settings.SCRAPER_NAVIGATION_TIMEOUT_SECONDS}s",
            ) from e
        except WebDriverException as e:
            raise StageError(Stage.content, f"Failed to analyze site {url}: {e.msg or type(e).__name__}") from e
        finally:
            if driver:
                driver.quit()

    @classmethod
    def extract_page(cls, driver) -> Dict[str, Any]:
        scripts = cls.extract_scripts(driver)
        return {
            "title": driver.title or "",
            "meta_description": cls.extract_meta(driver, "description"),
            "meta_keywords": cls.extract_meta(driver, "keywords"),
            "og_tags": cls.extract_og_tags(driver),
            "headings": cls.extract_headings(driver),
            "links": cls.extract_links(driver),
            "images": cls.extract_images(driver),
            "scripts": scripts,
            "content": {
                "visible_text": driver.find_element(By.TAG_NAME, "body").text,
                "html_length": len(driver.page_source or ""),
            },
            "screenshot": f"data:image/png;base64,{driver.get_screenshot_as_base64()}",
        }

    @staticmethod
    def extract_meta(driver, name: str) -> str:
        for selector in (f'meta[name="{name}"]', f'meta[property="{name}"]'):
            elements = driver.find_elements(By.CSS_SELECTOR, selector)
            if elements:
                return elements[0].get_attribute("content") or ""
        return ""

    @staticmethod
    def extract_og_tags(driver) -> Dict[str, str]:
        tags = {}
        for element in driver.find_elements(By.CSS_SELECTOR, 'meta[property^="og:"]'):
            prop = element.get_attribute("property")
            content = element.get_attribute("content")
            if prop and content:
                tags[prop] = content
        return tags

    @staticmethod
    def extract_headings(driver) -> Dict[str, List[str]]:
        headings = {}
        for tag in ["h1", "h2", "h3", "h4", "h5", "h6"]:
            headings[tag] = [
                element.text.strip()
                for element in driver.find_elements(By.TAG_NAME, tag)
                if element.text and element.text.strip()
            ]
        return headings

    @staticmethod
    def extract_links(driver) -> Dict[str, int]:
        anchors = driver.find_elements(By.TAG_NAME, "a")
        page_host = urlparse(driver.current_url).hostname
        internal = external = 0
        for anchor in anchors:
            href = anchor.get_attribute("href")
            if not href:
                continue
            parsed = urlparse(href)
            if parsed.scheme not in ("http", "https"):
                continue
            if parsed.hostname == page_host:
                internal += 1
            else:
                external += 1
        return {"internal": internal, "external": external, "total": len(anchors)}

    @staticmethod
    def extract_images(driver) -> Dict[str, Any]:
        details = []
        for image in driver.find_elements(By.TAG_NAME, "img"):
            details.append({
                "src": image.get_attribute("src") or "",
                "alt": image.get_attribute("alt") or "",
            })
        without_alt = sum(1 for detail in details if not detail["alt"].strip())
        return {"total": len(details), "without_alt": without_alt, "details": details}

    @staticmethod
    def extract_scripts(driver) -> Dict[str, Any]:
        sources = " ".join(
            (script.get_attribute("src") or "") + (script.get_attribute("innerHTML") or "")
            for script in driver.find_elements(By.TAG_NAME, "script")
        )
        result: Dict[str, Any] = {"detected": []}
        for key, label, pattern in MARKETING_SIGNATURES:
            found = bool(pattern.search(sources))
            result[key] = found
            if found:
                result["detected"].append(label)
        return result
