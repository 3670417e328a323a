from flight_extractor.schemas.extraction import (
    RouteIn,
    TriggerRequest,
    TriggerResponse,
    ProgressResponse,
    BatchStateResponse,
)
