from supabase import Client
from app.core.errors import DatabaseError, NotFoundError
from app.core.pagination import Pagination
from app.modules.clients.schemas import ClientCreate, ClientUpdate
from app.modules.documents.extraction import map_extraction_to_client_fields
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

# Columns a PUT may change
_UPDATABLE_FIELDS = (
    "name", "state", "tax_year", "filing_status", "ssn_last_four",
    "gross_income", "sched_c_revenue", "dependents", "metadata",
)


class ClientService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def list_clients(
        self,
        organization_id: str,
        pagination: Pagination,
        search: Optional[str] = None,
        state: Optional[str] = None,
        tax_year: Optional[int] = None,
    ) -> Dict[str, Any]:
        """List clients in the organization, most recently updated first"""
        try:
            query = self.supabase.table("clients")\
                .select("*", count="exact")\
                .eq("organization_id", organization_id)
            if search:
                query = query.ilike("name", f"%{search}%")
            if state:
                query = query.eq("state", state)
            if tax_year:
                query = query.eq("tax_year", tax_year)
            result = query.order("updated_at", desc=True)\
                .range(pagination.start, pagination.end)\
                .execute()
        except Exception as e:
            logger.error(f"Error listing clients: {e}")
            raise DatabaseError(str(e))
        return pagination.wrap(result.data or [], result.count)

    def create_client(self, client_data: ClientCreate, organization_id: str) -> Dict[str, Any]:
        """Create a client in the caller's organization"""
        try:
            result = self.supabase.table("clients").insert({
                "organization_id": organization_id,
                "name": client_data.name,
                "state": client_data.state.upper(),
                "tax_year": client_data.tax_year,
                "filing_status": client_data.filing_status,
                "ssn_last_four": client_data.ssn_last_four,
                "gross_income": client_data.gross_income,
                "sched_c_revenue": client_data.sched_c_revenue,
                "dependents": client_data.dependents,
                "metadata": client_data.metadata or {},
            }).execute()
        except Exception as e:
            logger.error(f"Error creating client: {e}")
            raise DatabaseError(str(e))
        if not result.data:
            raise DatabaseError("Failed to create client")
        return result.data[0]

    def get_client(self, client_id: str, organization_id: str, columns: str = "*") -> Dict[str, Any]:
        """Get a client by ID within the organization"""
        try:
            result = self.supabase.table("clients")\
                .select(columns)\
                .eq("id", client_id)\
                .eq("organization_id", organization_id)\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.error(f"Error fetching client {client_id}: {e}")
            raise DatabaseError(str(e))
        if result is None or not result.data:
            raise NotFoundError("Client not found")
        return result.data

    def update_client(self, client_id: str, client_data: ClientUpdate, organization_id: str) -> Dict[str, Any]:
        """Partially update a client; only fields present in the request change"""
        provided = client_data.model_dump(exclude_unset=True)
        update_data = {field: provided[field] for field in _UPDATABLE_FIELDS if field in provided}
        if "state" in update_data and update_data["state"]:
            update_data["state"] = update_data["state"].upper()
        if not update_data:
            return self.get_client(client_id, organization_id)
        return self._update(client_id, organization_id, update_data)

    def delete_client(self, client_id: str, organization_id: str) -> None:
        """Delete a client (documents, threads and tasks cascade in the database)"""
        self.get_client(client_id, organization_id, columns="id")
        try:
            self.supabase.table("clients")\
                .delete()\
                .eq("id", client_id)\
                .eq("organization_id", organization_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error deleting client {client_id}: {e}")
            raise DatabaseError(str(e))

    def aggregate_extractions(self, client_id: str, organization_id: str) -> Dict[str, Any]:
        """Roll completed document extractions up into the client's income fields"""
        client = self.get_client(
            client_id, organization_id, columns="id, name, gross_income, sched_c_revenue, dependents"
        )
        documents = self._documents(client_id, "id, type, extracted_data, extraction_status", completed_only=True)

        if not documents:
            return {
                "success": True,
                "message": "No completed extractions to aggregate",
                "aggregatedValues": {
                    "grossIncome": client.get("gross_income") or 0,
                    "schedCRevenue": client.get("sched_c_revenue") or 0,
                    "dependents": client.get("dependents") or 0,
                },
                "documentsProcessed": 0,
            }

        total_gross_income = 0.0
        total_sched_c_revenue = 0.0
        dependents: Optional[int] = None
        breakdown: List[Dict[str, Any]] = []

        for doc in documents:
            if not doc.get("extracted_data"):
                continue
            mapping = map_extraction_to_client_fields(doc["extracted_data"], doc["type"])
            contribution: Dict[str, float] = {}
            if mapping.get("grossIncome") is not None:
                total_gross_income += mapping["grossIncome"]
                contribution["grossIncome"] = mapping["grossIncome"]
            if mapping.get("schedCRevenue") is not None:
                total_sched_c_revenue += mapping["schedCRevenue"]
                contribution["schedCRevenue"] = mapping["schedCRevenue"]
            if mapping.get("dependents") is not None:
                # Latest return wins; dependents are not additive
                dependents = int(mapping["dependents"])
                contribution["dependents"] = dependents
            breakdown.append({"id": doc["id"], "type": doc["type"], "contribution": contribution})

        update_data: Dict[str, Any] = {}
        if total_gross_income > 0:
            update_data["gross_income"] = total_gross_income
        if total_sched_c_revenue > 0:
            update_data["sched_c_revenue"] = total_sched_c_revenue
        if dependents is not None:
            update_data["dependents"] = dependents

        updated = self._update(client_id, organization_id, update_data) if update_data else client

        return {
            "success": True,
            "aggregatedValues": {
                "grossIncome": total_gross_income,
                "schedCRevenue": total_sched_c_revenue,
                "dependents": dependents if dependents is not None else (client.get("dependents") or 0),
            },
            "documentsProcessed": len(breakdown),
            "breakdown": breakdown,
            "client": {
                "id": updated["id"],
                "name": updated.get("name"),
                "grossIncome": updated.get("gross_income"),
                "schedCRevenue": updated.get("sched_c_revenue"),
                "dependents": updated.get("dependents"),
            },
        }

    def extraction_stats(self, client_id: str, organization_id: str) -> Dict[str, Any]:
        """Count the client's documents by extraction status"""
        self.get_client(client_id, organization_id, columns="id")
        documents = self._documents(client_id, "id, type, extraction_status")
        stats = {"total": len(documents)}
        for status in ("pending", "processing", "completed", "failed"):
            stats[status] = sum(1 for d in documents if d.get("extraction_status") == status)
        return {
            "clientId": client_id,
            "extractionStats": stats,
            "canAggregate": stats["completed"] > 0,
        }

    def _documents(self, client_id: str, columns: str, completed_only: bool = False) -> List[Dict[str, Any]]:
        try:
            query = self.supabase.table("documents").select(columns).eq("client_id", client_id)
            if completed_only:
                query = query.eq("extraction_status", "completed")
            result = query.execute()
        except Exception as e:
            logger.error(f"Error fetching documents for client {client_id}: {e}")
            raise DatabaseError("Failed to fetch documents")
        return result.data or []

    def _update(self, client_id: str, organization_id: str, update_data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            result = self.supabase.table("clients")\
                .update(update_data)\
                .eq("id", client_id)\
                .eq("organization_id", organization_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error updating client {client_id}: {e}")
            raise DatabaseError(str(e))
        if not result.data:
            raise NotFoundError("Client not found")
        return result.data[0]


def ensure_client_in_organization(supabase: Client, client_id: str, organization_id: str) -> Dict[str, Any]:
    """Raise 404 unless the client exists in the organization; returns the client row"""
    return ClientService(supabase).get_client(client_id, organization_id)

