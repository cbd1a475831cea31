"""
Google Places API client for business profile data

Text search picks the candidate, place details fills in address, phone,
website, rating and types.
"""
from typing import Dict, List, Optional

from ..base import BaseAPIClient
from ..exceptions import GatewayError
from ..types import PlaceDetails, PlaceLookup

DETAIL_FIELDS = [
    "place_id",
    "name",
    "formatted_address",
    "formatted_phone_number",
    "international_phone_number",
    "website",
    "rating",
    "user_ratings_total",
    "types",
]

TYPE_TO_INDUSTRY = {
    # Professional services
    "accounting": "Contabilidad",
    "lawyer": "Legal / Abogados",
    "insurance_agency": "Seguros",
    "real_estate_agency": "Bienes Raices",
    "travel_agency": "Turismo / Viajes",
    "finance": "Finanzas",
    "bank": "Banca",
    # Health
    "doctor": "Salud / Medicina",
    "hospital": "Salud / Hospitales",
    "pharmacy": "Farmacia",
    "dentist": "Odontologia",
    "veterinary_care": "Veterinaria",
    "health": "Salud",
    # Tech and home
    "electronics_store": "Tecnologia / Electronica",
    "home_goods_store": "Hogar / Decoracion",
    "furniture_store": "Muebles",
    # Food and hospitality
    "restaurant": "Restaurantes / Gastronomia",
    "cafe": "Cafeteria",
    "bar": "Bar / Entretenimiento",
    "lodging": "Hoteleria",
    "meal_delivery": "Delivery / Comida",
    # Retail
    "store": "Retail / Comercio",
    "shopping_mall": "Centro Comercial",
    "clothing_store": "Moda / Ropa",
    "shoe_store": "Calzado",
    "jewelry_store": "Joyeria",
    # Automotive
    "car_dealer": "Automotriz / Concesionarios",
    "car_repair": "Automotriz / Talleres",
    "car_wash": "Automotriz / Lavado",
    # Education
    "school": "Educacion",
    "university": "Educacion Superior",
    "library": "Biblioteca",
    # Construction and trades
    "general_contractor": "Construccion",
    "electrician": "Servicios Electricos",
    "plumber": "Plomeria",
    # Personal care
    "beauty_salon": "Belleza / Estetica",
    "hair_care": "Peluqueria",
    "spa": "Spa / Bienestar",
    "gym": "Fitness / Gimnasio",
}

ESTABLISHMENT_FALLBACKS = [
    ("food", "Alimentos / Bebidas"),
    ("health", "Salud"),
    ("finance", "Finanzas"),
]


def map_types_to_industry(types: List[str]) -> Optional[str]:
    """Spanish industry label for a list of Places types"""
    for place_type in types:
        if place_type in TYPE_TO_INDUSTRY:
            return TYPE_TO_INDUSTRY[place_type]

    if "establishment" in types:
        for place_type, label in ESTABLISHMENT_FALLBACKS:
            if place_type in types:
                return label

    return None


class GooglePlacesClient(BaseAPIClient):
    """Google Places API client for business data"""

    def __init__(self, **kwargs):
        super().__init__(provider="google_places", **kwargs)

    def _get_base_url(self) -> str:
        return self.settings.api_base_urls["google_places"]

    def _get_headers(self) -> Dict[str, str]:
        """Google Places uses API key in URL params, not headers"""
        return {"Accept": "application/json"}

    @staticmethod
    def _status_error(response: Dict) -> Optional[str]:
        status = response.get("status")
        if status == "REQUEST_DENIED":
            return "API key invalida o sin permisos"
        if status not in ("OK", "ZERO_RESULTS"):
            return response.get("error_message") or status
        return None

    async def search_business(self, query: str, location: Optional[str] = None) -> List[str]:
        """Place ids for a text query, best match first"""
        search_query = f"{query} {location}" if location else query
        response = await self.make_request(
            "GET", "/textsearch/json", params={"query": search_query, "key": self.api_key}
        )
        error = self._status_error(response)
        if error:
            raise LookupError(error)
        return [place["place_id"] for place in (response.get("results") or [])[:5] if place.get("place_id")]

    async def get_place_details(self, place_id: str) -> PlaceDetails:
        response = await self.make_request(
            "GET",
            "/details/json",
            params={"place_id": place_id, "fields": ",".join(DETAIL_FIELDS), "key": self.api_key},
        )
        error = self._status_error(response)
        if error:
            raise LookupError(error)

        result = response.get("result") or {}
        return PlaceDetails(
            place_id=result.get("place_id", place_id),
            name=result.get("name"),
            formatted_address=result.get("formatted_address"),
            formatted_phone_number=result.get("formatted_phone_number"),
            international_phone_number=result.get("international_phone_number"),
            website=result.get("website"),
            rating=result.get("rating"),
            user_ratings_total=result.get("user_ratings_total"),
            types=result.get("types") or [],
        )

    async def find_business(self, business_name: str, location: Optional[str] = None) -> PlaceLookup:
        """
        Search and fetch details for the best match

        Never raises. A search that finds nothing is a success without a
        place; a details failure keeps the search success but reports the
        error.
        """
        if not self.is_configured:
            return PlaceLookup(success=False, error="API key de Google Places no configurada")

        try:
            place_ids = await self.search_business(business_name, location)
        except (GatewayError, LookupError) as e:
            self.logger.error(f"Google Places search error: {e}")
            return PlaceLookup(success=False, error=str(e))

        if not place_ids:
            return PlaceLookup(success=True, error="No se encontraron resultados")

        try:
            place = await self.get_place_details(place_ids[0])
        except (GatewayError, LookupError) as e:
            return PlaceLookup(success=True, error=str(e))

        self.logger.debug(f"Place details retrieved for {place.name}")
        return PlaceLookup(success=True, place=place)
