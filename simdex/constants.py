# Collection identifier (marker) files
IDENTIFIER_PREFIX = ".bamboost-collection-"
IDENTIFIER_SUFFIX = ".yml"

# Entry (simulation) constants
HDF_DATA_FILE_NAME = "data.h5"
PATH_PARAMETERS = ".parameters"

# Root attributes of the data file read into the cache
ATTR_CREATED_AT = "created_at"
ATTR_DESCRIPTION = "description"
ATTR_STATUS = "status"
ATTR_SUBMITTED = "submitted"

# Discovery
DEFAULT_MAX_DEPTH = 5

# Table names
TABLENAME_COLLECTIONS = "collections"
TABLENAME_SIMULATIONS = "simulations"
