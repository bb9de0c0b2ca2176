"""URL templates for the data API. ``{protocol}`` and ``{data_url}`` are filled per call."""

GET_USER_INFO_URL = "{protocol}://{data_url}/api/metaData/user"
GET_DEVICE_DETAILS_URL = "{protocol}://{data_url}/api/metaData/allDevices"
GET_DEVICE_METADATA_URL = "{protocol}://{data_url}/api/metaData/device/{device_id}"

GET_DP_URL = "{protocol}://{data_url}/api/apiLayer/getLimitedDataMultipleSensors/"
GET_FIRST_DP_URL = "{protocol}://{data_url}/api/apiLayer/getMultipleSensorsDPAfter"
GET_RANGE_DATA_URL = "{protocol}://{data_url}/api/apiLayer/getAllData"
GET_LOAD_ENTITIES_URL = "{protocol}://{data_url}/api/metaData/getAllClusterData"

PUBLISH_EVENT_URL = "{protocol}://{data_url}/api/eventTag/publishEvent"
GET_EVENTS_IN_TIMESLOT_URL = "{protocol}://{data_url}/api/eventTag/fetchEvents/timeslot"
GET_EVENT_DATA_COUNT_URL = "{protocol}://{data_url}/api/eventTag/fetchEvents/count"
GET_EVENT_CATEGORIES_URL = "{protocol}://{data_url}/api/eventTag"
GET_DETAILED_EVENT_URL = "{protocol}://{data_url}/api/eventTag/eventLogger"
GET_MAINTENANCE_MODULE_DATA_URL = "{protocol}://{data_url}/api/widget/getMaintenanceModuleData"
GET_DEVICE_DATA_URL = "{protocol}://{data_url}/api/table/getRows3"
GET_SENSOR_ROWS_URL = "{protocol}://{data_url}/api/table/getRowBySensor"
GET_DEVICE_ROWS_METADATA_URL = "{protocol}://{data_url}/api/table/getDeviceMetadata"


def format_url(template: str, protocol: str, data_url: str, **params: str) -> str:
    """Fill a URL template."""
    return template.format(protocol=protocol, data_url=data_url, **params)
