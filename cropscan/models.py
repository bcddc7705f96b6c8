"""
Pydantic models shared by the API, the services and the scan session.

Field names are camelCase because they are the JSON contract with the
web client and the documents stored in the `diseases`, `products` and
`scan_history` collections.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["Mild", "Moderate", "Severe"]
SEVERITY_LEVELS = ("Mild", "Moderate", "Severe")


class AnalyzeCropRequest(BaseModel):
    imageBase64: Optional[str] = None
    farmId: Optional[str] = None


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    diseaseName: str
    confidence: float = Field(..., ge=0, le=100)
    cropType: str
    severity: Severity
    symptoms: List[str] = Field(..., min_length=1)
    treatment: str = Field(..., min_length=1)
    prevention: List[str] = Field(..., min_length=1)


class DiseaseReference(BaseModel):
    id: str
    name: str
    symptoms: List[str] = Field(default_factory=list)
    treatment: str = ""
    prevention: List[str] = Field(default_factory=list)
    severity: Severity = "Moderate"
    commonCrops: List[str] = Field(default_factory=list)


class PriceRange(BaseModel):
    min: float = 0
    max: float = 0
    currency: str = "KES"


class Product(BaseModel):
    id: str
    productName: str
    category: str = ""
    activeIngredient: str = ""
    targetPests: List[str] = Field(default_factory=list)
    crops: List[str] = Field(default_factory=list)
    application: str = ""
    dosage: str = ""
    priceRange: Optional[PriceRange] = None
    organic: bool = False
    phi: str = ""
    notes: str = ""
    manufacturer: str = ""
    inStock: bool = True
    rating: float = 0
    imageUrl: str = ""


class ScanHistoryEntry(BaseModel):
    id: str
    userId: str
    image: str
    result: AnalysisResult
    farmId: Optional[str] = None
    createdAt: str


class SaveScanRequest(BaseModel):
    image: str
    result: AnalysisResult
    farmId: Optional[str] = None


class ImageDimensions(BaseModel):
    width: int
    height: int


class ImageMetadata(BaseModel):
    fileName: str
    fileSize: int
    mimeType: str
    dimensions: ImageDimensions


class ImageUploadResult(BaseModel):
    data: str
    metadata: ImageMetadata
