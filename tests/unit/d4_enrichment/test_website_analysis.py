"""
Tests for the homepage security and SEO check
"""
import httpx
import pytest

from d4_enrichment.website_analysis import HttpWebsiteAnalyzer, WebsiteAnalysisResult, parse_html
from tests.helpers import mock_http_client

PAGE = """
<html>
<head>
  <title>
    Acme SAC | Ropa en Lima
  </title>
  <meta name="description" content="Tienda de ropa en Lima">
  <meta name="viewport" content="width=device-width">
  <meta property="og:title" content="Acme">
  <link rel="canonical" href="https://acme.pe/">
  <script type="application/ld+json">{"@type": "Organization"}</script>
</head>
<body><h1>Acme</h1><h1 class="promo">Ofertas</h1><h2>Otros</h2></body>
</html>
"""


def test_parse_html_reads_seo_tags():
    result = WebsiteAnalysisResult(url="https://acme.pe")

    parse_html(result, PAGE)

    assert result.seo_title == "Acme SAC | Ropa en Lima"
    assert result.seo_description == "Tienda de ropa en Lima"
    assert result.seo_h1_count == 2
    assert result.seo_has_canonical is True
    assert result.seo_indexable is True
    assert result.has_viewport_meta is True
    assert result.has_open_graph is True
    assert result.has_twitter_cards is False
    assert result.has_json_ld is True


def test_parse_html_noindex_and_bare_page():
    result = WebsiteAnalysisResult(url="https://acme.pe")

    parse_html(result, '<meta name="robots" content="index, noindex"><p>hola</p>')

    assert result.seo_indexable is False
    assert result.seo_title is None
    assert result.seo_h1_count == 0


def test_parse_html_attribute_order_and_quotes():
    result = WebsiteAnalysisResult(url="https://acme.pe")

    parse_html(
        result,
        '<meta content="Acme\'s hardware store" name="description">'
        "<meta content='summary' name='twitter:card'>"
        '<link href="https://acme.pe/" rel="canonical">',
    )

    assert result.seo_description == "Acme's hardware store"
    assert result.has_twitter_cards is True
    assert result.seo_has_canonical is True


def test_parse_html_ignores_tags_inside_comments_and_scripts():
    result = WebsiteAnalysisResult(url="https://acme.pe")

    parse_html(
        result,
        "<title>Ferreteria</title>"
        "<!-- <h1>Viejo</h1> -->"
        '<script>document.write("<h1>" + nombre + "</h1>")</script>'
        '<meta name="description" content="">',
    )

    assert result.seo_title == "Ferreteria"
    assert result.seo_h1_count == 0
    assert result.seo_description is None
    assert result.has_json_ld is False


class TestHttpWebsiteAnalyzer:
    @pytest.mark.asyncio
    async def test_successful_analysis(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                text=PAGE,
                headers={"Strict-Transport-Security": "max-age=31536000", "X-Frame-Options": "DENY"},
            )

        analyzer = HttpWebsiteAnalyzer(http_client=mock_http_client(handler), timeout=2)

        result = await analyzer.analyze("acme.pe")

        assert result.success is True
        assert result.url == "https://acme.pe"
        assert result.has_https is True
        assert result.ssl_valid is True
        assert result.hsts_enabled is True
        assert result.x_frame_options == "DENY"
        assert result.has_csp is False
        assert result.seo_title == "Acme SAC | Ropa en Lima"
        assert result.errors == []
        assert result.analyzed_at is not None
        assert requests[0].method == "GET"
        assert requests[0].headers["user-agent"].startswith("Mozilla/5.0")

    @pytest.mark.asyncio
    async def test_redirect_to_http_is_not_https(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.scheme == "https":
                return httpx.Response(302, headers={"location": "http://acme.pe/inicio"})
            return httpx.Response(200, text="<title>Acme</title>")

        result = await HttpWebsiteAnalyzer(http_client=mock_http_client(handler), timeout=2).analyze("acme.pe")

        assert result.success is True
        assert result.has_https is False

    @pytest.mark.asyncio
    async def test_error_status(self):
        analyzer = HttpWebsiteAnalyzer(
            http_client=mock_http_client(lambda request: httpx.Response(503, headers={"Content-Security-Policy": "x"})),
            timeout=2,
        )

        result = await analyzer.analyze("https://acme.pe")

        assert result.success is False
        assert result.errors == ["HTTP 503"]
        assert result.has_csp is True
        assert result.seo_title is None

    @pytest.mark.asyncio
    async def test_unreachable_site(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Name or service not known", request=request)

        result = await HttpWebsiteAnalyzer(http_client=mock_http_client(handler), timeout=2).analyze("acme.pe")

        assert result.success is False
        assert result.errors == ["No se pudo acceder al sitio: Name or service not known"]
        assert result.response_time_ms is None
