from flight_extractor.scrapers.makemytrip import MakeMyTripScraper
from flight_extractor.scrapers.records import ExtractionJob, FareOption, FlightRecord, RunResult

__all__ = ["MakeMyTripScraper", "ExtractionJob", "FareOption", "FlightRecord", "RunResult"]
