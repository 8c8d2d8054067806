from fastapi import Header, HTTPException

from . import config


async def get_api_key(x_api_key: str = Header(..., alias="x-api-key")):
    """
    Validate API key from x-api-key header.
    Key comes from REDFLAG_API_KEY; see config.py for the local default.
    """
    if config.API_KEY and x_api_key != config.API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API Key")
    return x_api_key
